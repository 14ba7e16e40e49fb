# hc_core/api/urls.py
from __future__ import annotations

from rest_framework.routers import DefaultRouter

from hc_core.audit.api.views import AuditEventViewSet
from hc_core.authorizations.api.views import AuthorizationViewSet
from hc_core.scheduling.api.views import ScheduleEventViewSet, TemplateViewSet
from hc_core.visits.api.views import VisitRecordViewSet

router = DefaultRouter()

router.register(r"authorizations", AuthorizationViewSet, basename="authorizations")
router.register(r"schedule/templates", TemplateViewSet, basename="schedule-templates")
router.register(r"schedule/events", ScheduleEventViewSet, basename="schedule-events")
router.register(r"visits", VisitRecordViewSet, basename="visits")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = router.urls
