# hc_core/common/management/commands/ensure_roles.py

from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from hc_core.common.permissions import ALL_ROLES


class Command(BaseCommand):
    help = "Ensure the scheduling role groups exist (idempotent)."

    def handle(self, *args, **options):
        created = 0
        for name in sorted(ALL_ROLES):
            _, was_created = Group.objects.get_or_create(name=name)
            created += 1 if was_created else 0

        self.stdout.write(self.style.SUCCESS(f"Roles ensured. Newly created: {created}"))
