# conftest.py
import uuid
from datetime import date, time

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from hc_core.authorizations.models import Authorization


@pytest.fixture
def tenant_id():
    return uuid.UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture
def office_id():
    return uuid.UUID("00000000-0000-0000-0000-000000000101")


@pytest.fixture
def client_id():
    return uuid.UUID("00000000-0000-0000-0000-00000000c001")


@pytest.fixture
def staff_id():
    return uuid.UUID("00000000-0000-0000-0000-00000000e001")


@pytest.fixture
def other_staff_id():
    return uuid.UUID("00000000-0000-0000-0000-00000000e002")


def _make_user(username, group_name):
    User = get_user_model()
    user = User.objects.create_user(username=username, password="testpass", is_active=True)
    group, _ = Group.objects.get_or_create(name=group_name)
    user.groups.add(group)
    return user


@pytest.fixture
def user(db):
    """Test user in the ADMIN group."""
    return _make_user("testuser", "ADMIN")


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def client_for_role(db):
    """
    Build an authenticated APIClient for a single role group.
    Usage: client_for_role("CAREGIVER")
    """
    def _make(role):
        c = APIClient()
        c.force_authenticate(user=_make_user(f"user-{role.lower()}", role))
        return c

    return _make


@pytest.fixture
def make_authorization(db, tenant_id, office_id, client_id):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "tenant_id": tenant_id,
            "office_id": office_id,
            "client_id": client_id,
            "service_code": "phc",
            "authorization_no": f"AUTH-{counter['n']:04d}",
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 12, 31),
            "max_units": 100,
        }
        data.update(overrides)
        return Authorization.objects.create(**data)

    return _make


@pytest.fixture
def authorization(make_authorization):
    return make_authorization()


@pytest.fixture
def morning_slot():
    return time(9, 0), time(10, 0)


@pytest.fixture
def make_template(db, tenant_id, office_id, client_id):
    """
    Create a template through TemplateService.
    Usage: make_template(anchor_date=date(2024, 1, 7), name="Rotation")
    """
    from hc_core.scheduling.services import TemplateService

    def _make(**overrides):
        data = {
            "tenant_id": tenant_id,
            "office_id": office_id,
            "client_id": client_id,
            "name": "Master Weekly",
            "anchor_date": date(2024, 1, 7),
        }
        data.update(overrides)
        return TemplateService.create_template(**data)

    return _make


@pytest.fixture
def add_slot(tenant_id, office_id):
    """
    Add a template event to a week: add_slot(template, week, weekday, authorization, start=..., end=...).
    """
    from hc_core.scheduling.services import TemplateService

    def _add(template, week, weekday, authorization, start=time(9, 0), end=time(10, 0), **extra):
        return TemplateService.add_template_event(
            tenant_id=tenant_id,
            office_id=office_id,
            template_id=template.id,
            week_id=week.id,
            weekday=weekday,
            start_time=start,
            end_time=end,
            authorization_id=authorization.id,
            **extra,
        )

    return _add
