# agrolab/views.py
from __future__ import annotations

from typing import Dict, Type

from django.shortcuts import get_object_or_404
from django.utils import timezone

from drf_spectacular.utils import extend_schema
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import OrderFilter, ReportFilter, SampleFilter
from .models import Order, Report, Sample, WorkflowTransition
from .serializers import (
    OrderSerializer,
    RecordedBatchSerializer,
    ReportSerializer,
    ResultSubmissionSerializer,
    SampleSerializer,
    StatusChangeSerializer,
    TestParameterSerializer,
    TestResultSerializer,
    WorkflowTransitionSerializer,
)
from .services.monthly_summary import monthly_sample_summary
from .services.result_recorder import record_results
from .signals import set_current_user
from .workflows import workflow_definition
from .workflows.executor import execute_transition


KIND_MODEL_MAP: Dict[str, Type] = {
    "sample": Sample,
    "order": Order,
    "report": Report,
}


# ===============================================================
# Utilities
# ===============================================================
def _normalize_kind(kind: str) -> str:
    kind = (kind or "").strip().lower()
    if kind not in KIND_MODEL_MAP:
        raise ValidationError(
            {"kind": "Invalid workflow kind. Use 'sample', 'order' or 'report'."}
        )
    return kind


def _bind_user(request):
    # JWT users are only known once DRF authenticates the request.
    user = request.user if request.user.is_authenticated else None
    set_current_user(user)
    return user


def _int_param(request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be an integer."})


# ===============================================================
# Health
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "AGRO-LIMS"})


# ===============================================================
# Samples (status owned by the workflow engine)
# ===============================================================
class SampleViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = (
        Sample.objects.select_related("order", "order_item")
        .prefetch_related("test_results__parameter")
        .order_by("-created_at", "-id")
    )
    serializer_class = SampleSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = SampleFilter
    lookup_value_regex = r"\d+"

    @extend_schema(request=ResultSubmissionSerializer, responses=RecordedBatchSerializer)
    @action(detail=True, methods=["put"], url_path="results")
    def results(self, request, pk=None):
        """
        Record a batch of measurements. All-or-nothing: any invalid item
        rejects the whole batch.
        """
        user = _bind_user(request)

        serializer = ResultSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        recorded = record_results(
            sample_id=pk,
            submissions=serializer.validated_data["results"],
            recorded_by=user,
        )

        sample = Sample.objects.select_related("order").get(pk=pk)

        batch = {
            "sample_id": sample.pk,
            "sample_status": sample.status,
            "order_status": sample.order.status,
            "report": Report.objects.filter(order_id=sample.order_id).first(),
            "results": recorded,
        }
        return Response(RecordedBatchSerializer(batch).data)

    @extend_schema(responses=TestParameterSerializer(many=True))
    @action(detail=True, methods=["get"], url_path="parameters")
    def parameters(self, request, pk=None):
        sample = self.get_object()
        params = sample.order_item.parameters.prefetch_related("comparison_rules")
        return Response(TestParameterSerializer(params, many=True).data)


# ===============================================================
# Orders (READ-ONLY)
# ===============================================================
class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Order.objects.select_related("client", "report").order_by("-created_at", "-id")
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = OrderFilter


# ===============================================================
# Reports
# ===============================================================
class ReportViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = (
        Report.objects.select_related("client", "order")
        .prefetch_related("samples")
        .order_by("-created_at", "-id")
    )
    serializer_class = ReportSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = ReportFilter
    lookup_value_regex = r"\d+"

    @extend_schema(request=StatusChangeSerializer, responses=ReportSerializer)
    @action(detail=True, methods=["patch"], url_path="status")
    def change_status(self, request, pk=None):
        user = _bind_user(request)
        report = self.get_object()

        serializer = StatusChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        execute_transition(
            instance=report,
            kind="report",
            new_status=serializer.validated_data["status"],
            user=user,
        )

        report.refresh_from_db()
        return Response(ReportSerializer(report).data)

    @extend_schema(responses=ReportSerializer(many=True))
    @action(detail=False, methods=["get"], url_path="search", permission_classes=[AllowAny])
    def search(self, request):
        """
        Client-facing lookup: reports by the phone number on the order.
        """
        phone = (request.query_params.get("phone") or "").strip()
        if not phone:
            raise ValidationError({"phone": "This query parameter is required."})

        qs = self.filter_queryset(self.get_queryset()).filter(client__phone=phone)
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=False, methods=["get"], url_path="monthly")
    def monthly(self, request):
        now = timezone.localtime()
        year = _int_param(request, "year", now.year)
        month = _int_param(request, "month", now.month)

        try:
            summary = monthly_sample_summary(year=year, month=month)
        except ValueError as e:
            raise ValidationError({"month": str(e)})

        return Response({"year": year, "month": month, "summary": summary})


# ===============================================================
# Workflow API
# ===============================================================
class WorkflowDefinitionView(APIView):
    """
    GET /lab/workflows/<kind>/
    """

    def get(self, request, kind: str):
        return Response(workflow_definition(_normalize_kind(kind)))


class WorkflowTimelineView(APIView):
    """
    GET /lab/workflows/<kind>/<pk>/timeline/
    """

    def get(self, request, kind: str, pk: int):
        kind = _normalize_kind(kind)
        instance = get_object_or_404(KIND_MODEL_MAP[kind], pk=pk)

        rows = (
            WorkflowTransition.objects.filter(kind=kind, object_id=instance.pk)
            .select_related("performed_by")
            .order_by("created_at", "id")
        )
        return Response(
            {
                "kind": kind,
                "object_id": instance.pk,
                "current": instance.status,
                "timeline": WorkflowTransitionSerializer(rows, many=True).data,
            }
        )


class WorkflowTransitionView(APIView):
    """
    POST /lab/workflows/<kind>/<pk>/transition/

    Body:
        { "to_status": "IN_LAB" }
        or
        { "status": "IN_LAB" }
    """

    def post(self, request, kind: str, pk: int):
        user = _bind_user(request)

        kind = _normalize_kind(kind)
        instance = get_object_or_404(KIND_MODEL_MAP[kind], pk=pk)

        payload = request.data or {}
        to_status = payload.get("to_status") or payload.get("status")
        if not to_status:
            raise ValidationError({"to_status": "This field is required."})

        execute_transition(
            instance=instance,
            kind=kind,
            new_status=str(to_status),
            user=user,
        )

        instance.refresh_from_db()
        return Response(
            {
                "kind": kind,
                "object_id": instance.pk,
                "current": instance.status,
            }
        )
