# hc_core/visits/tests/test_verification_status.py
from datetime import datetime, timedelta, timezone

from hc_core.scheduling.models import ScheduleEventStatus
from hc_core.visits.models import VerificationStatus
from hc_core.visits.verification import default_verification_status

END = datetime(2024, 2, 5, 15, 0, tzinfo=timezone.utc)
IN = END - timedelta(hours=1)


def _status(**kw):
    data = {
        "scheduling_status": ScheduleEventStatus.IN_PROGRESS,
        "check_in": None,
        "check_out": None,
        "scheduled_end": END,
        "now": END - timedelta(minutes=30),
    }
    data.update(kw)
    return default_verification_status(**data)


def test_not_started_without_check_in():
    assert _status(scheduling_status=ScheduleEventStatus.PLANNED) == VerificationStatus.NOT_STARTED


def test_in_progress_before_scheduled_end():
    assert _status(check_in=IN) == VerificationStatus.IN_PROGRESS


def test_incomplete_once_scheduled_end_passes():
    assert _status(check_in=IN, now=END + timedelta(minutes=1)) == VerificationStatus.INCOMPLETE


def test_completed_with_both_times():
    assert _status(scheduling_status=ScheduleEventStatus.COMPLETED, check_in=IN, check_out=END) == (
        VerificationStatus.COMPLETED
    )


def test_verified_only_when_flagged():
    assert (
        _status(scheduling_status=ScheduleEventStatus.COMPLETED, check_in=IN, check_out=END, verified=True)
        == VerificationStatus.VERIFIED
    )
    # verification of an open visit does not count
    assert _status(check_in=IN, verified=True) == VerificationStatus.IN_PROGRESS


def test_cancelled_event_maps_to_cancelled():
    assert _status(scheduling_status=ScheduleEventStatus.CANCELLED, check_in=IN) == VerificationStatus.CANCELLED
