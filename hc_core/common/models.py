# hc_core/common/models.py
from __future__ import annotations

import uuid
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ScopedModel(TimeStampedModel):
    """
    Enforces multi-tenant + multi-office scope at the data layer.
    (The API layer resolves request scope; this enforces persistence scope.)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(db_index=True)
    office_id = models.UUIDField(db_index=True)

    class Meta:
        abstract = True


class VersionedModel(ScopedModel):
    """
    Optimistic concurrency marker. Writers that edit user-facing fields
    update with a (id, version) filter and bump the counter.
    """
    version = models.PositiveIntegerField(default=1)

    class Meta:
        abstract = True
