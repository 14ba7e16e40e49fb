# hc_core/scheduling/services.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from hc_core.audit.models import AuditEntityType
from hc_core.audit.services import AuditService
from hc_core.authorizations.models import Authorization
from hc_core.authorizations.services import LedgerError, LedgerService
from hc_core.common.api.exceptions import ConcurrentModification, ConflictError, InvalidTransition
from hc_core.common.units import units_for_slot
from hc_core.scheduling.models import (
    EDITABLE_STATUSES,
    EventOrigin,
    ScheduleEvent,
    ScheduleEventStatus,
    Template,
    TemplateEvent,
    TemplateStatus,
    TemplateWeek,
)
from hc_core.scheduling.rotation import iter_dates, sunday_weekday, week_index_for

logger = logging.getLogger(__name__)

CLIENT_CONFLICT = "CLIENT_CONFLICT"
STAFF_CONFLICT = "STAFF_CONFLICT"


@dataclass(frozen=True)
class CapacityWarning:
    schedule_event_id: UUID
    event_date: date
    authorization_id: UUID | None
    code: str
    message: str
    requested_units: int = 0
    available_units: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScheduleConflict:
    code: str
    schedule_event_id: UUID
    start_at: datetime
    end_at: datetime
    message: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GenerationResult:
    template_id: UUID
    created_count: int = 0
    skipped_count: int = 0
    capacity_warnings: List[CapacityWarning] = field(default_factory=list)
    generated_through: date | None = None
    noop: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "created_count": self.created_count,
            "skipped_count": self.skipped_count,
            "warnings": [w.as_dict() for w in self.capacity_warnings],
            "generated_through": self.generated_through,
            "noop": self.noop,
        }


@dataclass
class EventResult:
    event: ScheduleEvent
    warnings: List[Dict[str, Any]] = field(default_factory=list)


def slot_datetimes(day: date, start_time: time, end_time: time) -> tuple[datetime, datetime]:
    """Aware datetimes for a same-day slot in the office time zone."""
    start_at = timezone.make_aware(datetime.combine(day, start_time))
    end_at = timezone.make_aware(datetime.combine(day, end_time))
    return start_at, end_at


def _validate_slot(start_time: time, end_time: time) -> None:
    if start_time >= end_time:
        raise ValidationError({"end_time": "End time must be after start time on the same day."})


def _scoped_authorization(*, tenant_id: UUID, office_id: UUID, authorization_id: UUID, client_id: UUID) -> Authorization:
    auth = Authorization.objects.filter(id=authorization_id, tenant_id=tenant_id, office_id=office_id).first()
    if auth is None:
        raise ValidationError({"authorization_id": "Authorization not found in this scope."})
    if auth.client_id != client_id:
        raise ValidationError({"authorization_id": "Authorization belongs to a different client."})
    return auth


class TemplateService:
    @staticmethod
    def _lock(*, tenant_id: UUID, office_id: UUID, template_id: UUID) -> Template:
        try:
            return Template.objects.select_for_update().get(id=template_id, tenant_id=tenant_id, office_id=office_id)
        except Template.DoesNotExist:
            raise NotFound("Template not found in this scope.")

    @staticmethod
    def _check_version(template: Template, expected_version: int | None) -> None:
        if expected_version is not None and int(expected_version) != template.version:
            raise ConcurrentModification()

    @staticmethod
    def _bump(template: Template) -> None:
        Template.objects.filter(pk=template.pk).update(version=F("version") + 1, updated_at=timezone.now())
        template.refresh_from_db(fields=["version", "updated_at"])

    @staticmethod
    def _week(template: Template, week_id: UUID) -> TemplateWeek:
        week = TemplateWeek.objects.filter(id=week_id, template=template).first()
        if week is None:
            raise NotFound("Template week not found.")
        return week

    @staticmethod
    @transaction.atomic
    def create_template(
        *,
        tenant_id: UUID,
        office_id: UUID,
        client_id: UUID,
        name: str = "Master Weekly",
        description: str = "",
        anchor_date: date | None = None,
        status: str = TemplateStatus.ACTIVE,
        actor_user_id: int | None = None,
    ) -> Template:
        """
        Create a template together with its first week.
        """
        name = (name or "").strip() or "Master Weekly"
        if status not in TemplateStatus.values:
            raise ValidationError({"status": f"Unknown status '{status}'."})

        try:
            with transaction.atomic():
                template = Template.objects.create(
                    tenant_id=tenant_id,
                    office_id=office_id,
                    client_id=client_id,
                    name=name,
                    description=description or "",
                    anchor_date=anchor_date or timezone.localdate(),
                    status=status,
                )
        except IntegrityError:
            raise ConflictError("A template with this name already exists for the client.")

        TemplateWeek.objects.create(
            tenant_id=tenant_id,
            office_id=office_id,
            template=template,
            week_index=0,
            name="Week 1",
        )

        AuditService.log(
            event_code="schedule.template.created",
            entity_type=AuditEntityType.TEMPLATE,
            entity_id=template.id,
            tenant_id=tenant_id,
            office_id=office_id,
            actor_user_id=actor_user_id,
            metadata={"client_id": client_id, "name": name},
        )
        return template

    @staticmethod
    @transaction.atomic
    def add_week(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        name: str = "",
        expected_version: int | None = None,
    ) -> TemplateWeek:
        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)
        TemplateService._check_version(template, expected_version)

        index = template.weeks.count()
        week = TemplateWeek.objects.create(
            tenant_id=tenant_id,
            office_id=office_id,
            template=template,
            week_index=index,
            name=name or f"Week {index + 1}",
        )
        TemplateService._bump(template)
        return week

    @staticmethod
    @transaction.atomic
    def remove_week(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        week_id: UUID,
        expected_version: int | None = None,
    ) -> Template:
        """
        Remove one week and close the gap so week indexes stay 0..N-1.
        Already generated events keep their dates and units.
        """
        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)
        TemplateService._check_version(template, expected_version)

        week = TemplateService._week(template, week_id)
        if template.weeks.count() <= 1:
            raise ValidationError({"week": "A template must keep at least one week."})

        removed_index = week.week_index
        week.delete()

        for w in template.weeks.filter(week_index__gt=removed_index).order_by("week_index"):
            w.week_index -= 1
            w.save(update_fields=["week_index", "updated_at"])

        TemplateService._bump(template)
        return template

    @staticmethod
    def _clean_event_fields(template: Template, data: Dict[str, Any]) -> Dict[str, Any]:
        weekday = data.get("weekday")
        if weekday is None or not (0 <= int(weekday) <= 6):
            raise ValidationError({"weekday": "Weekday must be 0 (Sunday) to 6 (Saturday)."})
        data["weekday"] = int(weekday)

        _validate_slot(data["start_time"], data["end_time"])

        auth = _scoped_authorization(
            tenant_id=template.tenant_id,
            office_id=template.office_id,
            authorization_id=data["authorization_id"],
            client_id=template.client_id,
        )
        data["authorization"] = auth
        data.pop("authorization_id", None)

        if data.get("planned_units") is None:
            data["planned_units"] = units_for_slot(data["start_time"], data["end_time"])
        elif int(data["planned_units"]) < 0:
            raise ValidationError({"planned_units": "Planned units must be >= 0."})
        return data

    @staticmethod
    @transaction.atomic
    def add_template_event(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        week_id: UUID,
        weekday: int,
        start_time: time,
        end_time: time,
        authorization_id: UUID,
        event_code: str = "",
        planned_units: int | None = None,
        staff_id: UUID | None = None,
        comment: str = "",
        expected_version: int | None = None,
    ) -> TemplateEvent:
        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)
        TemplateService._check_version(template, expected_version)
        week = TemplateService._week(template, week_id)

        data = TemplateService._clean_event_fields(
            template,
            {
                "weekday": weekday,
                "start_time": start_time,
                "end_time": end_time,
                "authorization_id": authorization_id,
                "planned_units": planned_units,
            },
        )

        try:
            with transaction.atomic():
                te = TemplateEvent.objects.create(
                    tenant_id=tenant_id,
                    office_id=office_id,
                    template_week=week,
                    event_code=event_code or "",
                    staff_id=staff_id,
                    comment=comment or "",
                    **data,
                )
        except IntegrityError:
            raise ValidationError({"start_time": "An event already starts at this time on this weekday."})

        TemplateService._bump(template)
        return te

    @staticmethod
    @transaction.atomic
    def update_template_event(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        template_event_id: UUID,
        expected_version: int | None = None,
        **changes: Any,
    ) -> TemplateEvent:
        """
        Edit a template event. Only dates not yet generated pick up the change.
        """
        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)
        TemplateService._check_version(template, expected_version)

        te = TemplateEvent.objects.filter(id=template_event_id, template_week__template=template).first()
        if te is None:
            raise NotFound("Template event not found.")

        allowed = {"weekday", "start_time", "end_time", "authorization_id", "event_code", "planned_units", "staff_id", "comment"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError({"fields": f"Not editable: {', '.join(sorted(unknown))}."})

        times_changed = "start_time" in changes or "end_time" in changes
        data = {
            "weekday": changes.get("weekday", te.weekday),
            "start_time": changes.get("start_time", te.start_time),
            "end_time": changes.get("end_time", te.end_time),
            "authorization_id": changes.get("authorization_id", te.authorization_id),
            "planned_units": changes.get("planned_units", None if times_changed else te.planned_units),
        }
        data = TemplateService._clean_event_fields(template, data)

        for k, v in data.items():
            setattr(te, k, v)
        if "staff_id" in changes:
            te.staff_id = changes["staff_id"]
        for k in ("event_code", "comment"):
            if k in changes:
                setattr(te, k, changes[k] or "")

        try:
            with transaction.atomic():
                te.save()
        except IntegrityError:
            raise ValidationError({"start_time": "An event already starts at this time on this weekday."})

        TemplateService._bump(template)
        return te

    @staticmethod
    @transaction.atomic
    def remove_template_event(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        template_event_id: UUID,
        expected_version: int | None = None,
    ) -> None:
        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)
        TemplateService._check_version(template, expected_version)

        deleted, _ = TemplateEvent.objects.filter(id=template_event_id, template_week__template=template).delete()
        if not deleted:
            raise NotFound("Template event not found.")
        TemplateService._bump(template)

    @staticmethod
    @transaction.atomic
    def set_status(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        status: str,
        expected_version: int | None = None,
        actor_user_id: int | None = None,
    ) -> Template:
        if status not in TemplateStatus.values:
            raise ValidationError({"status": f"Unknown status '{status}'."})

        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)
        TemplateService._check_version(template, expected_version)

        if template.status == status:
            return template

        old = template.status
        template.status = status
        template.save(update_fields=["status", "updated_at"])
        TemplateService._bump(template)

        AuditService.log(
            event_code="schedule.template.status_changed",
            entity_type=AuditEntityType.TEMPLATE,
            entity_id=template.id,
            tenant_id=tenant_id,
            office_id=office_id,
            actor_user_id=actor_user_id,
            metadata={"from": old, "to": status},
        )
        return template


class GenerationService:
    @staticmethod
    @transaction.atomic
    def generate(
        *,
        tenant_id: UUID,
        office_id: UUID,
        template_id: UUID,
        through_date: date,
        today: date | None = None,
        actor_user_id: int | None = None,
    ) -> GenerationResult:
        """
        Materialize schedule events from a template up to through_date.

        Generation resumes after the template's watermark, so repeating a
        request (or overlapping ranges) never duplicates events. Each new
        event reserves its planned units; a reservation that cannot be made
        leaves the event in place with capacity_warning set.
        """
        template = TemplateService._lock(tenant_id=tenant_id, office_id=office_id, template_id=template_id)

        weeks = list(template.weeks.order_by("week_index").prefetch_related("events"))
        if not weeks:
            raise ValidationError({"template": "Template has no weeks to generate from."})

        today = today or timezone.localdate()
        start = today
        if template.generated_through is not None:
            start = max(start, template.generated_through + timedelta(days=1))

        result = GenerationResult(template_id=template.id, generated_through=template.generated_through)

        if through_date < start:
            result.noop = True
            logger.info(
                "Template %s already generated through %s; nothing to do for %s",
                template.id,
                template.generated_through,
                through_date,
            )
            return result

        by_week: Dict[int, Dict[int, List[TemplateEvent]]] = {}
        for w in weeks:
            slots: Dict[int, List[TemplateEvent]] = {}
            for te in w.events.all():
                slots.setdefault(te.weekday, []).append(te)
            by_week[w.week_index] = slots

        initial_status = ScheduleEventStatus.PLANNED if template.is_active else ScheduleEventStatus.DRAFT
        generated_at = timezone.now()

        for d in iter_dates(start, through_date):
            week_index = week_index_for(template.anchor_date, d, len(weeks))
            for te in by_week.get(week_index, {}).get(sunday_weekday(d), []):
                if ScheduleEvent.objects.filter(template_event=te, event_date=d).exists():
                    result.skipped_count += 1
                    continue

                start_at, end_at = slot_datetimes(d, te.start_time, te.end_time)
                try:
                    with transaction.atomic():
                        event = ScheduleEvent.objects.create(
                            tenant_id=tenant_id,
                            office_id=office_id,
                            client_id=template.client_id,
                            template_event=te,
                            source_template=template,
                            event_date=d,
                            start_at=start_at,
                            end_at=end_at,
                            authorization_id=te.authorization_id,
                            event_code=te.event_code,
                            staff_id=te.staff_id,
                            status=initial_status,
                            origin=EventOrigin.TEMPLATE,
                            planned_units=te.planned_units,
                            comment=te.comment,
                            generated_at=generated_at,
                        )
                except IntegrityError:
                    # concurrent generator won the (template_event, event_date) slot
                    result.skipped_count += 1
                    continue

                result.created_count += 1
                warning = ScheduleEventService.reserve_with_warning(event, actor_user_id=actor_user_id)
                if warning is not None:
                    result.capacity_warnings.append(warning)

        template.generated_through = through_date
        template.save(update_fields=["generated_through", "updated_at"])
        TemplateService._bump(template)
        result.generated_through = through_date

        AuditService.log(
            event_code="schedule.generated",
            entity_type=AuditEntityType.TEMPLATE,
            entity_id=template.id,
            tenant_id=tenant_id,
            office_id=office_id,
            actor_user_id=actor_user_id,
            metadata={
                "from": start,
                "through": through_date,
                "created": result.created_count,
                "skipped": result.skipped_count,
                "capacity_warnings": len(result.capacity_warnings),
            },
        )
        logger.info(
            "Generated template %s from %s through %s: created=%s skipped=%s warnings=%s",
            template.id,
            start,
            through_date,
            result.created_count,
            result.skipped_count,
            len(result.capacity_warnings),
        )
        return result


class ScheduleEventService:
    @staticmethod
    def get_for_update(*, tenant_id: UUID, office_id: UUID, event_id: UUID) -> ScheduleEvent:
        try:
            return ScheduleEvent.objects.select_for_update().get(id=event_id, tenant_id=tenant_id, office_id=office_id)
        except ScheduleEvent.DoesNotExist:
            raise NotFound("Schedule event not found in this scope.")

    @staticmethod
    def _capacity_warning(event: ScheduleEvent, exc: LedgerError) -> CapacityWarning:
        return CapacityWarning(
            schedule_event_id=event.id,
            event_date=event.event_date,
            authorization_id=event.authorization_id,
            code=exc.code,
            message=exc.message,
            requested_units=exc.requested,
            available_units=exc.available,
        )

    @staticmethod
    def reserve_with_warning(event: ScheduleEvent, *, actor_user_id: int | None = None) -> Optional[CapacityWarning]:
        """
        Reserve the event's planned units. A ledger refusal flags the event
        instead of failing the caller, and is returned as a warning.
        """
        if event.authorization_id is None or event.reservation_id is not None:
            return None

        try:
            reservation = LedgerService.reserve(
                tenant_id=event.tenant_id,
                office_id=event.office_id,
                authorization_id=event.authorization_id,
                units=event.planned_units,
                schedule_event_id=event.id,
                service_date=event.event_date,
                actor_user_id=actor_user_id,
            )
        except LedgerError as exc:
            logger.warning("Schedule event %s on %s not reserved: %s", event.id, event.event_date, exc.message)
            event.capacity_warning = True
            event.capacity_warning_detail = exc.message[:255]
            event.save(update_fields=["capacity_warning", "capacity_warning_detail", "updated_at"])
            return ScheduleEventService._capacity_warning(event, exc)

        event.reservation = reservation
        event.capacity_warning = False
        event.capacity_warning_detail = ""
        event.save(update_fields=["reservation", "capacity_warning", "capacity_warning_detail", "updated_at"])
        return None

    @staticmethod
    def detect_conflicts(
        *,
        tenant_id: UUID,
        office_id: UUID,
        client_id: UUID,
        start_at: datetime,
        end_at: datetime,
        staff_id: UUID | None = None,
        exclude_event_id: UUID | None = None,
    ) -> List[ScheduleConflict]:
        """
        Overlapping live events for the same client or the same staff member.
        Two windows overlap when start1 < end2 and end1 > start2.
        """
        qs = (
            ScheduleEvent.objects.filter(
                tenant_id=tenant_id,
                office_id=office_id,
                start_at__lt=end_at,
                end_at__gt=start_at,
                cancel_requested=False,
            )
            .exclude(status=ScheduleEventStatus.CANCELLED)
            .order_by("start_at")
        )
        if exclude_event_id:
            qs = qs.exclude(id=exclude_event_id)

        who = Q(client_id=client_id)
        if staff_id:
            who |= Q(staff_id=staff_id)

        conflicts: List[ScheduleConflict] = []
        for other in qs.filter(who):
            if other.client_id == client_id:
                conflicts.append(
                    ScheduleConflict(
                        code=CLIENT_CONFLICT,
                        schedule_event_id=other.id,
                        start_at=other.start_at,
                        end_at=other.end_at,
                        message="Client already has a visit in this window.",
                    )
                )
            if staff_id and other.staff_id == staff_id:
                conflicts.append(
                    ScheduleConflict(
                        code=STAFF_CONFLICT,
                        schedule_event_id=other.id,
                        start_at=other.start_at,
                        end_at=other.end_at,
                        message="Staff member is already booked in this window.",
                    )
                )
        return conflicts

    @staticmethod
    @transaction.atomic
    def create_manual_event(
        *,
        tenant_id: UUID,
        office_id: UUID,
        client_id: UUID,
        event_date: date,
        start_time: time,
        end_time: time,
        authorization_id: UUID | None = None,
        event_code: str = "",
        staff_id: UUID | None = None,
        planned_units: int | None = None,
        status: str = ScheduleEventStatus.PLANNED,
        origin: str = EventOrigin.MANUAL,
        comment: str = "",
        actor_user_id: int | None = None,
    ) -> EventResult:
        if status not in (ScheduleEventStatus.DRAFT, ScheduleEventStatus.PLANNED):
            raise ValidationError({"status": "New events start as DRAFT or PLANNED."})
        _validate_slot(start_time, end_time)

        if authorization_id is not None:
            _scoped_authorization(
                tenant_id=tenant_id,
                office_id=office_id,
                authorization_id=authorization_id,
                client_id=client_id,
            )

        if planned_units is None:
            planned_units = units_for_slot(start_time, end_time)
        elif int(planned_units) < 0:
            raise ValidationError({"planned_units": "Planned units must be >= 0."})

        start_at, end_at = slot_datetimes(event_date, start_time, end_time)
        conflicts = ScheduleEventService.detect_conflicts(
            tenant_id=tenant_id,
            office_id=office_id,
            client_id=client_id,
            staff_id=staff_id,
            start_at=start_at,
            end_at=end_at,
        )

        event = ScheduleEvent.objects.create(
            tenant_id=tenant_id,
            office_id=office_id,
            client_id=client_id,
            event_date=event_date,
            start_at=start_at,
            end_at=end_at,
            authorization_id=authorization_id,
            event_code=event_code or "",
            staff_id=staff_id,
            status=status,
            origin=origin,
            planned_units=int(planned_units),
            comment=comment or "",
        )

        warnings = [c.as_dict() for c in conflicts]
        capacity = ScheduleEventService.reserve_with_warning(event, actor_user_id=actor_user_id)
        if capacity is not None:
            warnings.append(capacity.as_dict())

        AuditService.log(
            event_code="schedule.event.created",
            entity_type=AuditEntityType.SCHEDULE_EVENT,
            entity_id=event.id,
            tenant_id=tenant_id,
            office_id=office_id,
            actor_user_id=actor_user_id,
            metadata={"origin": origin, "event_date": event_date, "conflicts": len(conflicts)},
        )
        return EventResult(event=event, warnings=warnings)

    @staticmethod
    @transaction.atomic
    def update_event(
        *,
        tenant_id: UUID,
        office_id: UUID,
        event_id: UUID,
        expected_version: int,
        actor_user_id: int | None = None,
        **changes: Any,
    ) -> EventResult:
        """
        Edit a not-yet-started event under optimistic concurrency.

        The write is conditional on (id, version); if someone else saved in
        between, ConcurrentModification is raised and nothing changes.
        """
        allowed = {"event_date", "start_time", "end_time", "staff_id", "event_code", "planned_units", "comment"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError({"fields": f"Not editable: {', '.join(sorted(unknown))}."})

        event = ScheduleEvent.objects.filter(id=event_id, tenant_id=tenant_id, office_id=office_id).first()
        if event is None:
            raise NotFound("Schedule event not found in this scope.")
        if event.version != int(expected_version):
            raise ConcurrentModification()
        if event.status not in EDITABLE_STATUSES:
            raise InvalidTransition(
                "Only DRAFT, PLANNED or CONFIRMED events can be edited.",
                current_status=event.status,
                action="update",
            )

        local_start = timezone.localtime(event.start_at)
        local_end = timezone.localtime(event.end_at)
        event_date = changes.get("event_date", event.event_date)
        start_time = changes.get("start_time", local_start.time())
        end_time = changes.get("end_time", local_end.time())
        _validate_slot(start_time, end_time)
        start_at, end_at = slot_datetimes(event_date, start_time, end_time)

        fields: Dict[str, Any] = {"event_date": event_date, "start_at": start_at, "end_at": end_at}
        if "staff_id" in changes:
            fields["staff_id"] = changes["staff_id"]
        for k in ("event_code", "comment"):
            if k in changes:
                fields[k] = changes[k] or ""

        times_changed = start_at != event.start_at or end_at != event.end_at
        if changes.get("planned_units") is not None:
            if int(changes["planned_units"]) < 0:
                raise ValidationError({"planned_units": "Planned units must be >= 0."})
            fields["planned_units"] = int(changes["planned_units"])
        elif times_changed:
            fields["planned_units"] = units_for_slot(start_time, end_time)

        try:
            with transaction.atomic():
                updated = ScheduleEvent.objects.filter(pk=event.pk, version=event.version).update(
                    version=F("version") + 1,
                    updated_at=timezone.now(),
                    **fields,
                )
        except IntegrityError:
            raise ConflictError("Another event from this template slot already exists on that date.")
        if updated == 0:
            raise ConcurrentModification()

        event = ScheduleEventService.get_for_update(tenant_id=tenant_id, office_id=office_id, event_id=event_id)
        warnings: List[Dict[str, Any]] = []

        if event.reservation_id is not None and event.reservation.units != event.planned_units:
            try:
                LedgerService.adjust(
                    tenant_id=tenant_id,
                    office_id=office_id,
                    reservation_id=event.reservation_id,
                    new_units=event.planned_units,
                    actor_user_id=actor_user_id,
                )
            except LedgerError as exc:
                event.capacity_warning = True
                event.capacity_warning_detail = exc.message[:255]
                event.save(update_fields=["capacity_warning", "capacity_warning_detail", "updated_at"])
                warnings.append(ScheduleEventService._capacity_warning(event, exc).as_dict())
        else:
            # retries an earlier refusal once capacity is back
            capacity = ScheduleEventService.reserve_with_warning(event, actor_user_id=actor_user_id)
            if capacity is not None:
                warnings.append(capacity.as_dict())

        if times_changed or "staff_id" in fields:
            conflicts = ScheduleEventService.detect_conflicts(
                tenant_id=tenant_id,
                office_id=office_id,
                client_id=event.client_id,
                staff_id=event.staff_id,
                start_at=event.start_at,
                end_at=event.end_at,
                exclude_event_id=event.id,
            )
            warnings.extend(c.as_dict() for c in conflicts)

        AuditService.log(
            event_code="schedule.event.updated",
            entity_type=AuditEntityType.SCHEDULE_EVENT,
            entity_id=event.id,
            tenant_id=tenant_id,
            office_id=office_id,
            actor_user_id=actor_user_id,
            metadata={"changes": sorted(changes), "version": event.version},
        )
        return EventResult(event=event, warnings=warnings)
