# hc_core/visits/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hc_core.audit.models import AuditEntityType
from hc_core.audit.services import AuditService
from hc_core.authorizations.models import ReservationStatus
from hc_core.authorizations.services import InsufficientCapacity, LedgerError, LedgerService
from hc_core.common.api.exceptions import InvalidTransition
from hc_core.scheduling.models import EventOrigin, ScheduleEvent, ScheduleEventStatus
from hc_core.scheduling.services import ScheduleEventService
from hc_core.visits.models import VerificationStatus, VisitRecord
from hc_core.visits.selectors import overdue_open_visits
from hc_core.visits.verification import default_verification_status

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    event: ScheduleEvent
    visit: Optional[VisitRecord]
    warnings: List[Dict[str, Any]] = field(default_factory=list)


def _require_reason(reason: str | None, field_name: str = "reason") -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({field_name: "A reason is required."})
    return reason


def _ensure_aware(value: datetime | None, field_name: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError({field_name: "Expected a datetime."})
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


class VisitService:
    """
    Visit lifecycle on top of ScheduleEvent.

    Scheduling status:
        DRAFT -> PLANNED -> CONFIRMED -> IN_PROGRESS -> COMPLETED
        any non-terminal -> CANCELLED
        CANCELLED with check-in and no check-out -> COMPLETED (in-flight cancel)

    Every transition runs under the event row lock and bumps its version.
    """

    # ------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------
    @staticmethod
    def _invalid(event: ScheduleEvent, action: str, detail: str | None = None) -> InvalidTransition:
        return InvalidTransition(
            detail or f"Cannot {action.replace('_', ' ')} a {event.status} event.",
            current_status=event.status,
            action=action,
        )

    @staticmethod
    def _save_event(event: ScheduleEvent, fields: List[str]) -> None:
        event.version += 1
        event.save(update_fields=list(fields) + ["version", "updated_at"])

    @staticmethod
    def _visit_for(event: ScheduleEvent, *, create: bool) -> Optional[VisitRecord]:
        visit = VisitRecord.objects.select_for_update().filter(schedule_event=event).first()
        if visit is not None or not create:
            return visit
        try:
            with transaction.atomic():
                return VisitRecord.objects.create(
                    tenant_id=event.tenant_id,
                    office_id=event.office_id,
                    schedule_event=event,
                    actual_staff_id=event.staff_id,
                )
        except IntegrityError:
            return VisitRecord.objects.select_for_update().get(schedule_event=event)

    @staticmethod
    def _sync_visit_status(visit: VisitRecord, event: ScheduleEvent, *, now: datetime | None = None) -> None:
        visit.visit_status = default_verification_status(
            scheduling_status=event.status,
            check_in=visit.check_in_time,
            check_out=visit.check_out_time,
            scheduled_end=event.end_at,
            now=now or timezone.now(),
            verified=visit.verified_at is not None,
        )

    @staticmethod
    def _settle_units(event: ScheduleEvent, units: int, *, actor_user_id: int | None) -> List[Dict[str, Any]]:
        """
        Bring the event's reservation to its actual units.

        Delivered care is never rolled back for lack of units: a strict
        adjustment that runs out of capacity is retried through the audited
        override path and reported as a warning.
        """
        warnings: List[Dict[str, Any]] = []
        scope = {"tenant_id": event.tenant_id, "office_id": event.office_id}

        reservation = event.reservation if event.reservation_id else None
        if reservation is not None and reservation.status == ReservationStatus.ACTIVE:
            try:
                LedgerService.adjust(**scope, reservation_id=reservation.id, new_units=units, actor_user_id=actor_user_id)
            except InsufficientCapacity as exc:
                LedgerService.adjust(
                    **scope,
                    reservation_id=reservation.id,
                    new_units=units,
                    allow_overrun=True,
                    actor_user_id=actor_user_id,
                )
                warnings.append(VisitService._over_allocation_warning(event, exc))
            return warnings

        if event.authorization_id is None:
            return warnings

        try:
            with transaction.atomic():
                reservation = LedgerService.reserve(
                    **scope,
                    authorization_id=event.authorization_id,
                    units=units,
                    schedule_event_id=event.id,
                    service_date=event.event_date,
                    allow_overrun=True,
                    actor_user_id=actor_user_id,
                )
        except LedgerError as exc:
            logger.warning("Completed event %s has no unit reservation: %s", event.id, exc.message)
            event.capacity_warning = True
            event.capacity_warning_detail = exc.message[:255]
            warnings.append(
                {
                    "code": exc.code,
                    "message": exc.message,
                    "schedule_event_id": event.id,
                    "authorization_id": event.authorization_id,
                    "requested_units": exc.requested,
                    "available_units": exc.available,
                }
            )
            return warnings

        event.reservation = reservation
        if reservation.over_allocated:
            warnings.append(
                {
                    "code": InsufficientCapacity.code,
                    "message": "Units reserved beyond the authorization through override.",
                    "schedule_event_id": event.id,
                    "authorization_id": event.authorization_id,
                    "requested_units": units,
                    "over_allocated": True,
                }
            )
        return warnings

    @staticmethod
    def _over_allocation_warning(event: ScheduleEvent, exc: LedgerError) -> Dict[str, Any]:
        logger.warning("Event %s completed beyond authorization %s: %s", event.id, event.authorization_id, exc.message)
        return {
            "code": exc.code,
            "message": exc.message,
            "schedule_event_id": event.id,
            "authorization_id": event.authorization_id,
            "requested_units": exc.requested,
            "available_units": exc.available,
            "over_allocated": True,
        }

    @staticmethod
    def _audit(event: ScheduleEvent, code: str, actor_user_id: int | None, **metadata: Any) -> None:
        AuditService.log(
            event_code=code,
            entity_type=AuditEntityType.SCHEDULE_EVENT,
            entity_id=event.id,
            tenant_id=event.tenant_id,
            office_id=event.office_id,
            actor_user_id=actor_user_id,
            metadata={"status": event.status, **metadata},
        )

    @staticmethod
    def _simple_move(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        action: str,
        source: str,
        target: str,
        actor_user_id: int | None,
    ) -> TransitionResult:
        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)
        if event.status != source:
            raise VisitService._invalid(event, action)

        event.status = target
        VisitService._save_event(event, ["status"])
        VisitService._audit(event, f"visit.{action}", actor_user_id, previous=source)
        return TransitionResult(event=event, visit=VisitService._visit_for(event, create=False))

    # ------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------
    @staticmethod
    @transaction.atomic
    def plan(*, tenant_id: UUID, office_id: UUID, event_id: UUID, actor_user_id: int | None = None) -> TransitionResult:
        return VisitService._simple_move(
            tenant_id=tenant_id,
            office_id=office_id,
            event_id=event_id,
            action="plan",
            source=ScheduleEventStatus.DRAFT,
            target=ScheduleEventStatus.PLANNED,
            actor_user_id=actor_user_id,
        )

    @staticmethod
    @transaction.atomic
    def confirm(*, tenant_id: UUID, office_id: UUID, event_id: UUID, actor_user_id: int | None = None) -> TransitionResult:
        return VisitService._simple_move(
            tenant_id=tenant_id,
            office_id=office_id,
            event_id=event_id,
            action="confirm",
            source=ScheduleEventStatus.PLANNED,
            target=ScheduleEventStatus.CONFIRMED,
            actor_user_id=actor_user_id,
        )

    @staticmethod
    @transaction.atomic
    def check_in(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        at: datetime | None = None,
        staff_id: UUID | None = None,
        actor_user_id: int | None = None,
    ) -> TransitionResult:
        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)
        if event.status != ScheduleEventStatus.CONFIRMED:
            raise VisitService._invalid(event, "check_in")

        at = _ensure_aware(at, "at") or timezone.now()

        event.status = ScheduleEventStatus.IN_PROGRESS
        event.checked_in_at = at
        VisitService._save_event(event, ["status", "checked_in_at"])

        visit = VisitService._visit_for(event, create=True)
        visit.check_in_time = at
        if staff_id:
            visit.actual_staff_id = staff_id
        visit.recompute()
        VisitService._sync_visit_status(visit, event, now=at)
        visit.save()

        VisitService._audit(event, "visit.check_in", actor_user_id, at=at)
        return TransitionResult(event=event, visit=visit)

    @staticmethod
    @transaction.atomic
    def check_out(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        at: datetime | None = None,
        actor_user_id: int | None = None,
    ) -> TransitionResult:
        """
        Complete a visit and settle its units from the actual duration.

        Also accepted for a CANCELLED event that was checked in and never
        checked out: the care was delivered, so it completes and keeps its
        do-not-bill flag.
        """
        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)

        in_flight_cancel = (
            event.status == ScheduleEventStatus.CANCELLED
            and event.checked_in_at is not None
            and event.checked_out_at is None
        )
        if event.status != ScheduleEventStatus.IN_PROGRESS and not in_flight_cancel:
            raise VisitService._invalid(event, "check_out")

        at = _ensure_aware(at, "at") or timezone.now()
        if at < event.checked_in_at:
            raise ValidationError({"at": "Check-out cannot be before check-in."})

        visit = VisitService._visit_for(event, create=True)
        if visit.check_in_time is None:
            visit.check_in_time = event.checked_in_at
        visit.check_out_time = at
        visit.recompute()

        event.status = ScheduleEventStatus.COMPLETED
        event.checked_out_at = at
        event.actual_units = visit.units

        warnings = VisitService._settle_units(event, visit.units, actor_user_id=actor_user_id)
        VisitService._save_event(
            event,
            ["status", "checked_out_at", "actual_units", "reservation", "capacity_warning", "capacity_warning_detail"],
        )

        VisitService._sync_visit_status(visit, event, now=at)
        visit.save()

        VisitService._audit(
            event,
            "visit.check_out",
            actor_user_id,
            at=at,
            actual_units=visit.units,
            after_cancel=in_flight_cancel,
            over_allocated=bool(warnings),
        )
        return TransitionResult(event=event, visit=visit, warnings=warnings)

    @staticmethod
    @transaction.atomic
    def cancel(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        reason: str,
        actor_user_id: int | None = None,
    ) -> TransitionResult:
        """
        Cancel from any non-terminal state.

        Units go back to the authorization unless the caregiver already
        checked in; an in-flight visit keeps its reservation so it can still
        be checked out. Cancelling twice is a no-op.
        """
        reason = _require_reason(reason)
        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)

        if event.status == ScheduleEventStatus.CANCELLED:
            return TransitionResult(event=event, visit=VisitService._visit_for(event, create=False))
        if event.status == ScheduleEventStatus.COMPLETED:
            raise VisitService._invalid(event, "cancel")

        previous = event.status
        released = False
        if event.checked_in_at is None and event.reservation_id is not None:
            LedgerService.release(tenant_id=tenant_id, office_id=office_id, reservation_id=event.reservation_id)
            released = True

        event.status = ScheduleEventStatus.CANCELLED
        event.cancel_reason = reason
        event.cancelled_at = timezone.now()
        event.cancel_requested = True
        VisitService._save_event(event, ["status", "cancel_reason", "cancelled_at", "cancel_requested"])

        visit = VisitService._visit_for(event, create=False)
        if visit is not None:
            visit.do_not_bill = True
            VisitService._sync_visit_status(visit, event)
            visit.save(update_fields=["do_not_bill", "visit_status", "updated_at"])

        VisitService._audit(
            event,
            "visit.cancelled",
            actor_user_id,
            previous=previous,
            reason=reason,
            units_released=released,
        )
        return TransitionResult(event=event, visit=visit)

    @staticmethod
    @transaction.atomic
    def adjust_times(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        adjusted_in: datetime | None = None,
        adjusted_out: datetime | None = None,
        actor_user_id: int | None = None,
    ) -> TransitionResult:
        """
        Back-office correction of visit times. Hours and units follow the
        adjusted window; a completed visit re-settles its units. Any earlier
        verification is withdrawn.
        """
        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)
        visit = VisitService._visit_for(event, create=False)
        if visit is None or visit.check_in_time is None:
            raise VisitService._invalid(event, "adjust_times", "Only checked-in visits can have their times adjusted.")

        adjusted_in = _ensure_aware(adjusted_in, "adjusted_in")
        adjusted_out = _ensure_aware(adjusted_out, "adjusted_out")
        if adjusted_in is None and adjusted_out is None:
            raise ValidationError({"adjusted_in": "Provide adjusted_in and/or adjusted_out."})

        if adjusted_in is not None:
            visit.adjusted_in = adjusted_in
        if adjusted_out is not None:
            visit.adjusted_out = adjusted_out

        start, end = visit.effective_window()
        if end <= start:
            raise ValidationError({"adjusted_out": "Adjusted end must be after adjusted start."})

        visit.recompute()
        visit.verified_at = None
        visit.verified_by = None

        warnings: List[Dict[str, Any]] = []
        if event.status == ScheduleEventStatus.COMPLETED:
            event.actual_units = visit.units
            warnings = VisitService._settle_units(event, visit.units, actor_user_id=actor_user_id)
            VisitService._save_event(
                event, ["actual_units", "reservation", "capacity_warning", "capacity_warning_detail"]
            )

        VisitService._sync_visit_status(visit, event)
        visit.save()

        VisitService._audit(
            event,
            "visit.times_adjusted",
            actor_user_id,
            adjusted_in=visit.adjusted_in,
            adjusted_out=visit.adjusted_out,
            units=visit.units,
        )
        return TransitionResult(event=event, visit=visit, warnings=warnings)

    @staticmethod
    @transaction.atomic
    def verify(*, tenant_id: UUID, office_id: UUID, event_id: UUID, actor_user_id: int | None = None) -> TransitionResult:
        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)
        visit = VisitService._visit_for(event, create=False)

        if visit is None or visit.visit_status != VerificationStatus.COMPLETED:
            current = visit.visit_status if visit is not None else VerificationStatus.NOT_STARTED
            raise InvalidTransition(
                "Only COMPLETED visits can be verified.",
                current_status=current,
                action="verify",
            )

        visit.verified_at = timezone.now()
        visit.verified_by_id = actor_user_id
        visit.visit_status = VerificationStatus.VERIFIED
        visit.save(update_fields=["verified_at", "verified_by", "visit_status", "updated_at"])

        VisitService._audit(event, "visit.verified", actor_user_id)
        return TransitionResult(event=event, visit=visit)

    # ------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------
    ACTION_PAYLOAD_KEYS: Dict[str, set] = {
        "plan": set(),
        "confirm": set(),
        "check_in": {"at", "staff_id"},
        "check_out": {"at"},
        "cancel": {"reason"},
        "adjust_times": {"adjusted_in", "adjusted_out"},
        "verify": set(),
    }

    @staticmethod
    def _handlers() -> Dict[str, Callable[..., TransitionResult]]:
        return {
            "plan": VisitService.plan,
            "confirm": VisitService.confirm,
            "check_in": VisitService.check_in,
            "check_out": VisitService.check_out,
            "cancel": VisitService.cancel,
            "adjust_times": VisitService.adjust_times,
            "verify": VisitService.verify,
        }

    @staticmethod
    def transition(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        action: str,
        payload: Dict[str, Any] | None = None,
        actor_user_id: int | None = None,
    ) -> TransitionResult:
        handler = VisitService._handlers().get(action)
        if handler is None:
            raise ValidationError({"action": f"Unknown action '{action}'."})

        payload = dict(payload or {})
        unexpected = set(payload) - VisitService.ACTION_PAYLOAD_KEYS[action]
        if unexpected:
            raise ValidationError({"payload": f"Unexpected fields for {action}: {', '.join(sorted(unexpected))}."})
        if action == "cancel" and "reason" not in payload:
            raise ValidationError({"reason": "A reason is required."})

        return handler(
            tenant_id=tenant_id,
            office_id=office_id,
            event_id=event_id,
            actor_user_id=actor_user_id,
            **payload,
        )

    # ------------------------------------------------------------
    # unscheduled / staff replacement
    # ------------------------------------------------------------
    @staticmethod
    @transaction.atomic
    def create_unscheduled(
        *,
        tenant_id: UUID,
        office_id: UUID,
        replacement_staff_id: UUID,
        reason: str,
        schedule_event_id: UUID | None = None,
        client_id: UUID | None = None,
        event_date: date | None = None,
        start_time: time | None = None,
        end_time: time | None = None,
        authorization_id: UUID | None = None,
        event_code: str = "",
        actor_user_id: int | None = None,
    ) -> TransitionResult:
        """
        Record a visit delivered by someone other than the planned caregiver.

        Against an existing event the staff is reassigned in place (the
        first original caregiver is remembered) and its visit record is
        created or amended. Against a free slot a new UNSCHEDULED event is
        created with its visit record.
        """
        reason = _require_reason(reason)
        has_slot = any(v is not None for v in (client_id, event_date, start_time, end_time))

        if schedule_event_id is not None and has_slot:
            raise ValidationError({"detail": "Provide either schedule_event_id or a slot, not both."})

        warnings: List[Dict[str, Any]] = []

        if schedule_event_id is not None:
            event = ScheduleEventService.get_for_update(
                tenant_id=tenant_id, office_id=office_id, event_id=schedule_event_id
            )
            if event.status == ScheduleEventStatus.CANCELLED:
                raise VisitService._invalid(event, "replace_staff", "Cancelled events cannot be replaced.")

            if event.replacement_original_staff_id is None:
                event.replacement_original_staff_id = event.staff_id
            event.staff_id = replacement_staff_id
            event.origin = EventOrigin.UNSCHEDULED
            event.replacement_reason = reason
            VisitService._save_event(
                event, ["replacement_original_staff_id", "staff_id", "origin", "replacement_reason"]
            )
        else:
            missing = [
                name
                for name, value in (
                    ("client_id", client_id),
                    ("event_date", event_date),
                    ("start_time", start_time),
                    ("end_time", end_time),
                )
                if value is None
            ]
            if missing:
                raise ValidationError({name: "This field is required without schedule_event_id." for name in missing})

            created = ScheduleEventService.create_manual_event(
                tenant_id=tenant_id,
                office_id=office_id,
                client_id=client_id,
                event_date=event_date,
                start_time=start_time,
                end_time=end_time,
                authorization_id=authorization_id,
                event_code=event_code,
                staff_id=replacement_staff_id,
                origin=EventOrigin.UNSCHEDULED,
                actor_user_id=actor_user_id,
            )
            event = ScheduleEventService.get_for_update(
                tenant_id=tenant_id, office_id=office_id, event_id=created.event.id
            )
            event.replacement_reason = reason
            VisitService._save_event(event, ["replacement_reason"])
            warnings = created.warnings

        visit = VisitService._visit_for(event, create=True)
        visit.is_unscheduled = True
        visit.unscheduled_reason = reason
        visit.actual_staff_id = replacement_staff_id
        VisitService._sync_visit_status(visit, event)
        visit.save()

        VisitService._audit(
            event,
            "visit.unscheduled",
            actor_user_id,
            reason=reason,
            replacement_staff_id=replacement_staff_id,
            original_staff_id=event.replacement_original_staff_id,
        )
        return TransitionResult(event=event, visit=visit, warnings=warnings)

    # ------------------------------------------------------------
    # sweep
    # ------------------------------------------------------------
    @staticmethod
    @transaction.atomic
    def mark_incomplete(
        *,
        now: datetime | None = None,
        tenant_id: UUID | None = None,
        office_id: UUID | None = None,
    ) -> int:
        """
        Flag checked-in visits whose scheduled end has passed without a
        check-out as INCOMPLETE. Returns the number of visits updated.
        """
        now = now or timezone.now()
        updated = overdue_open_visits(now=now, tenant_id=tenant_id, office_id=office_id).update(
            visit_status=VerificationStatus.INCOMPLETE,
            updated_at=now,
        )

        if updated:
            logger.info("Marked %s visits INCOMPLETE (scheduled end before %s)", updated, now.isoformat())
        return updated
