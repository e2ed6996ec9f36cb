# agrolab/filters.py
import django_filters as df
from .models import Order, Report, Sample


class SampleFilter(df.FilterSet):
    order = df.NumberFilter(field_name="order_id")
    sample_code = df.CharFilter(field_name="sample_code", lookup_expr="icontains")
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    sample_type = df.CharFilter(field_name="sample_type", lookup_expr="iexact")
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = Sample
        fields = ["order", "sample_code", "status", "sample_type", "sample_category", "created_at"]


class OrderFilter(df.FilterSet):
    client = df.NumberFilter(field_name="client_id")
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = Order
        fields = ["client", "status", "created_at"]


class ReportFilter(df.FilterSet):
    order = df.NumberFilter(field_name="order_id")
    report_number = df.CharFilter(field_name="report_number", lookup_expr="icontains")
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = Report
        fields = ["order", "report_number", "status", "created_at"]
