from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone

from hc_core.scheduling.models import ScheduleEvent, TemplateWeek

pytestmark = pytest.mark.django_db


def test_generate_schedules_is_repeatable(capsys, make_template, add_slot, make_authorization):
    """
    Second run over the same horizon must create nothing.
    """
    today = timezone.localdate()
    auth = make_authorization(start_date=today - timedelta(days=7), end_date=None)
    template = make_template()
    week = TemplateWeek.objects.get(template=template)
    add_slot(template, week, (today.weekday() + 1) % 7, auth)

    call_command("generate_schedules", "--days", "6")
    out1 = capsys.readouterr().out
    assert "created=1" in out1, out1

    call_command("generate_schedules", "--days", "6")
    out2 = capsys.readouterr().out
    assert "created=0" in out2, f"Second run generated again.\n{out2}"

    assert ScheduleEvent.objects.count() == 1
