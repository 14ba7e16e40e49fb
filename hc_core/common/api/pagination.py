# hc_core/common/api/pagination.py
from __future__ import annotations

from django.db.models import QuerySet
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 500


def paginate(request, queryset, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    List responses always use { count, next, previous, results }.
    Unordered querysets are ordered by id so pages never overlap.
    """
    if isinstance(queryset, QuerySet) and not queryset.ordered:
        queryset = queryset.order_by("id")

    p = paginator or DefaultPagination()
    page = p.paginate_queryset(queryset, request)
    if page is None:
        return Response(serializer_class(queryset, many=True).data)
    return p.get_paginated_response(serializer_class(page, many=True).data)
