# hc_core/visits/verification.py
"""
Verification status of a visit, derived from the schedule event and the
recorded call times.

    cancelled event                      -> CANCELLED
    no check-in                          -> NOT_STARTED
    check-in, no check-out, before end   -> IN_PROGRESS
    check-in, no check-out, end passed   -> INCOMPLETE
    check-in and check-out               -> COMPLETED
    COMPLETED and verified by a person   -> VERIFIED

VERIFIED is only ever reached through an explicit verify action.
"""
from __future__ import annotations

from datetime import datetime

from hc_core.scheduling.models import ScheduleEventStatus
from hc_core.visits.models import VerificationStatus


def default_verification_status(
    *,
    scheduling_status: str,
    check_in: datetime | None,
    check_out: datetime | None,
    scheduled_end: datetime,
    now: datetime,
    verified: bool = False,
) -> str:
    if scheduling_status == ScheduleEventStatus.CANCELLED:
        return VerificationStatus.CANCELLED
    if check_in is None:
        return VerificationStatus.NOT_STARTED
    if check_out is None:
        if now > scheduled_end:
            return VerificationStatus.INCOMPLETE
        return VerificationStatus.IN_PROGRESS
    if verified:
        return VerificationStatus.VERIFIED
    return VerificationStatus.COMPLETED
