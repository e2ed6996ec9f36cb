from __future__ import annotations

from rest_framework import serializers

from .models import (
    ComparisonRule,
    Order,
    Report,
    Sample,
    TestParameter,
    TestResult,
    WorkflowTransition,
)
from .workflows import allowed_manual_states


# ===============================================================
# Catalog
# ===============================================================

class ComparisonRuleSerializer(serializers.ModelSerializer):
    class Meta:
        model = ComparisonRule
        fields = (
            "id",
            "kind",
            "min_value",
            "max_value",
            "interpretation",
            "soil_category",
            "priority",
        )
        read_only_fields = fields


class TestParameterSerializer(serializers.ModelSerializer):
    comparison_rules = ComparisonRuleSerializer(many=True, read_only=True)

    class Meta:
        model = TestParameter
        fields = ("id", "name", "unit", "analysis_type", "comparison_rules")
        read_only_fields = fields


# ===============================================================
# Results
# ===============================================================

class TestResultSerializer(serializers.ModelSerializer):
    parameter_name = serializers.CharField(source="parameter.name", read_only=True)
    unit = serializers.CharField(source="parameter.unit", read_only=True)

    class Meta:
        model = TestResult
        fields = (
            "id",
            "parameter",
            "parameter_name",
            "unit",
            "value",
            "interpretation",
            "upland_interpretation",
            "wetland_interpretation",
            "recorded_by",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ResultSubmissionItemSerializer(serializers.Serializer):
    parameter_id = serializers.IntegerField()
    # Values arrive as text from the bench forms; numeric parsing happens
    # in the recorder so its error names the parameter.
    value = serializers.CharField(allow_blank=True, trim_whitespace=True)


class ResultSubmissionSerializer(serializers.Serializer):
    results = ResultSubmissionItemSerializer(many=True, allow_empty=False)


class ReportRefSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    report_number = serializers.CharField()
    status = serializers.CharField()


class RecordedBatchSerializer(serializers.Serializer):
    sample_id = serializers.IntegerField()
    sample_status = serializers.CharField()
    order_status = serializers.CharField()
    report = ReportRefSerializer(allow_null=True)
    results = TestResultSerializer(many=True)


# ===============================================================
# Samples / Orders / Reports
# ===============================================================

class SampleSerializer(serializers.ModelSerializer):
    test_results = TestResultSerializer(many=True, read_only=True)
    allowed_next = serializers.SerializerMethodField()

    class Meta:
        model = Sample
        fields = (
            "id",
            "sample_code",
            "order",
            "order_item",
            "sample_type",
            "sample_category",
            "status",
            "allowed_next",
            "report",
            "collection_date",
            "collection_location",
            "received_at",
            "test_results",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_allowed_next(self, obj):
        return allowed_manual_states("sample", obj.status)


class OrderSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.name", read_only=True)
    report_id = serializers.SerializerMethodField()
    sample_count = serializers.IntegerField(source="samples.count", read_only=True)

    class Meta:
        model = Order
        fields = (
            "id",
            "client",
            "client_name",
            "invoice",
            "operator",
            "status",
            "report_id",
            "sample_count",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_report_id(self, obj):
        report = getattr(obj, "report", None)
        return report.pk if report else None


class ReportSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.name", read_only=True)
    client_phone = serializers.CharField(source="client.phone", read_only=True)
    samples = serializers.PrimaryKeyRelatedField(many=True, read_only=True)
    allowed_next = serializers.SerializerMethodField()

    class Meta:
        model = Report
        fields = (
            "id",
            "report_number",
            "status",
            "allowed_next",
            "order",
            "client",
            "client_name",
            "client_phone",
            "invoice",
            "generated_by",
            "samples",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_allowed_next(self, obj):
        return allowed_manual_states("report", obj.status)


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.CharField()


# ===============================================================
# Workflow timeline
# ===============================================================

class WorkflowTransitionSerializer(serializers.ModelSerializer):
    performed_by = serializers.CharField(source="performed_by.username", default=None, read_only=True)

    class Meta:
        model = WorkflowTransition
        fields = (
            "id",
            "kind",
            "object_id",
            "from_status",
            "to_status",
            "performed_by",
            "created_at",
        )
        read_only_fields = fields
