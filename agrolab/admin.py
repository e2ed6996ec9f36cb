# agrolab/admin.py

from django.contrib import admin

from .models import (
    AgroTest,
    AuditLog,
    Client,
    ComparisonRule,
    Invoice,
    Order,
    OrderItem,
    OrderTestParameter,
    Report,
    Sample,
    TestParameter,
    TestResult,
    WorkflowTransition,
)


# =============================================================
# Workflow transitions (READ-ONLY AUDIT LOG)
# =============================================================

@admin.register(WorkflowTransition)
class WorkflowTransitionAdmin(admin.ModelAdmin):
    list_display = (
        "kind",
        "object_id",
        "from_status",
        "to_status",
        "performed_by",
        "created_at",
    )
    list_filter = ("kind", "from_status", "to_status")
    search_fields = ("object_id", "performed_by__username")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in WorkflowTransition._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "user", "created_at")
    search_fields = ("action", "user__username")
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


# =============================================================
# Catalog
# =============================================================

class ComparisonRuleInline(admin.TabularInline):
    model = ComparisonRule
    extra = 0
    fields = ("priority", "kind", "min_value", "max_value", "soil_category", "interpretation")
    ordering = ("priority", "id")


class TestParameterInline(admin.TabularInline):
    model = TestParameter
    extra = 0
    fields = ("name", "unit", "analysis_type")


@admin.register(AgroTest)
class AgroTestAdmin(admin.ModelAdmin):
    list_display = ("name", "sample_type", "created_at")
    list_filter = ("sample_type",)
    search_fields = ("name",)
    inlines = [TestParameterInline]


@admin.register(TestParameter)
class TestParameterAdmin(admin.ModelAdmin):
    list_display = ("name", "unit", "agro_test", "analysis_type")
    list_filter = ("agro_test__sample_type", "analysis_type")
    search_fields = ("name", "agro_test__name")
    inlines = [ComparisonRuleInline]


# =============================================================
# Clients / orders
# =============================================================

@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "client_type", "phone", "email")
    list_filter = ("client_type",)
    search_fields = ("name", "phone", "email")


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "client", "total_amount", "payment_status")
    list_filter = ("payment_status",)
    search_fields = ("invoice_number", "client__name")


class OrderTestParameterInline(admin.TabularInline):
    model = OrderTestParameter
    extra = 0


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ("order", "agro_test", "quantity")
    inlines = [OrderTestParameterInline]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "client", "status", "operator", "created_at")
    list_filter = ("status",)
    search_fields = ("client__name", "client__phone")
    readonly_fields = ("status", "created_at", "updated_at")


# =============================================================
# Samples / results / reports (status is workflow-owned)
# =============================================================

class TestResultInline(admin.TabularInline):
    model = TestResult
    extra = 0
    readonly_fields = ("interpretation", "upland_interpretation", "wetland_interpretation", "recorded_by")


@admin.register(Sample)
class SampleAdmin(admin.ModelAdmin):
    list_display = ("sample_code", "sample_type", "sample_category", "status", "order", "report")
    list_filter = ("status", "sample_type", "sample_category")
    search_fields = ("sample_code",)
    readonly_fields = ("status", "report", "created_at", "updated_at")
    inlines = [TestResultInline]


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ("report_number", "order", "client", "status", "generated_by", "updated_at")
    list_filter = ("status",)
    search_fields = ("report_number", "client__phone")
    readonly_fields = ("report_number", "order", "status", "created_at", "updated_at")
