# hc_core/scheduling/management/commands/generate_schedules.py
from __future__ import annotations

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from hc_core.scheduling.models import Template, TemplateStatus
from hc_core.scheduling.services import GenerationService


class Command(BaseCommand):
    help = "Roll every active template forward so schedules exist for the next N days. Safe to re-run."

    def add_arguments(self, parser):
        parser.add_argument("--days", type=int, default=14, help="Horizon in days from today (default 14).")
        parser.add_argument("--tenant-id", type=str, default=None, help="Optional tenant UUID filter.")
        parser.add_argument("--office-id", type=str, default=None, help="Optional office UUID filter.")

    def handle(self, *args, **opts):
        today = timezone.localdate()
        through = today + timedelta(days=max(opts["days"], 0))

        qs = Template.objects.filter(status=TemplateStatus.ACTIVE).order_by("created_at")
        if opts["tenant_id"]:
            qs = qs.filter(tenant_id=opts["tenant_id"])
        if opts["office_id"]:
            qs = qs.filter(office_id=opts["office_id"])

        templates = created = skipped = warnings = 0
        for t in qs.iterator():
            result = GenerationService.generate(
                tenant_id=t.tenant_id,
                office_id=t.office_id,
                template_id=t.id,
                through_date=through,
                today=today,
            )
            templates += 1
            created += result.created_count
            skipped += result.skipped_count
            warnings += len(result.capacity_warnings)

        self.stdout.write(
            self.style.SUCCESS(
                f"Generated through {through.isoformat()} for {templates} templates: "
                f"created={created} skipped={skipped} capacity_warnings={warnings}"
            )
        )
