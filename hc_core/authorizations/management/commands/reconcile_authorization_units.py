# hc_core/authorizations/management/commands/reconcile_authorization_units.py
from __future__ import annotations

from django.core.management.base import BaseCommand

from hc_core.authorizations.models import Authorization
from hc_core.authorizations.services import LedgerService


class Command(BaseCommand):
    help = "Recompute used_units of each authorization from its ACTIVE reservations."

    def add_arguments(self, parser):
        parser.add_argument("--tenant-id", type=str, default=None, help="Optional tenant UUID filter.")
        parser.add_argument("--office-id", type=str, default=None, help="Optional office UUID filter.")

    def handle(self, *args, **opts):
        qs = Authorization.objects.all().order_by("created_at")
        if opts["tenant_id"]:
            qs = qs.filter(tenant_id=opts["tenant_id"])
        if opts["office_id"]:
            qs = qs.filter(office_id=opts["office_id"])

        examined = repaired = 0
        for auth in qs.iterator():
            before = auth.used_units
            bal = LedgerService.reconcile(tenant_id=auth.tenant_id, office_id=auth.office_id, authorization_id=auth.id)
            examined += 1
            if bal.used_units != before:
                repaired += 1
                self.stdout.write(f"{auth.authorization_no}: used_units {before} -> {bal.used_units}")

        self.stdout.write(self.style.SUCCESS(f"Examined {examined} authorizations, repaired {repaired}."))
