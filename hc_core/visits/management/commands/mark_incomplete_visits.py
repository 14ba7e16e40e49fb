# hc_core/visits/management/commands/mark_incomplete_visits.py
from __future__ import annotations

from django.core.management.base import BaseCommand
from django.utils.timezone import now

from hc_core.visits.selectors import overdue_open_visits
from hc_core.visits.services import VisitService


class Command(BaseCommand):
    help = "Mark checked-in visits whose scheduled end has passed without a check-out as INCOMPLETE."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Print counts only; do not write.")
        parser.add_argument("--tenant-id", type=str, default=None, help="Optional tenant UUID filter.")
        parser.add_argument("--office-id", type=str, default=None, help="Optional office UUID filter.")

    def handle(self, *args, **opts):
        ts = now()
        tenant_id = opts["tenant_id"]
        office_id = opts["office_id"]

        if opts["dry_run"]:
            count = overdue_open_visits(now=ts, tenant_id=tenant_id, office_id=office_id).count()
            self.stdout.write(self.style.WARNING(f"DRY RUN: {count} visits would be marked INCOMPLETE."))
            return

        count = VisitService.mark_incomplete(now=ts, tenant_id=tenant_id, office_id=office_id)
        self.stdout.write(self.style.SUCCESS(f"Marked {count} visits INCOMPLETE."))
