# agrolab/models/orders.py

from django.conf import settings
from django.db import models

from agrolab.workflows.guards import WorkflowWriteGuardMixin

from .catalog import AgroTest, SampleType, SoilCategory, TestParameter
from .core import TimeStampedModel


# ============================================================
# Client / Invoice
# ============================================================
class Client(TimeStampedModel):
    class ClientType(models.TextChoices):
        FARMER = "FARMER", "Farmer"
        GOVT_ORG = "GOVT_ORG", "Government organisation"
        PRIVATE = "PRIVATE", "Private organisation"

    name = models.CharField(max_length=255)
    client_type = models.CharField(
        max_length=20,
        choices=ClientType.choices,
        default=ClientType.FARMER,
    )
    phone = models.CharField(max_length=32, db_index=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.phone})"


class Invoice(TimeStampedModel):
    class PaymentStatus(models.TextChoices):
        PAID = "PAID", "Paid"
        DUE = "DUE", "Due"

    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="invoices")
    invoice_number = models.CharField(max_length=64, unique=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.DUE,
    )

    def __str__(self):
        return self.invoice_number


# ============================================================
# Order
# ============================================================
class Order(WorkflowWriteGuardMixin, TimeStampedModel):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        TESTING_COMPLETED = "TESTING_COMPLETED", "Testing completed"
        REPORT_GENERATED = "REPORT_GENERATED", "Report generated"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="orders")
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="placed_orders",
    )
    status = models.CharField(
        max_length=30,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
        editable=False,
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Order #{self.pk} ({self.status})"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    agro_test = models.ForeignKey(AgroTest, on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField(default=1)
    parameters = models.ManyToManyField(
        TestParameter,
        through="OrderTestParameter",
        related_name="order_items",
        blank=True,
    )

    def __str__(self):
        return f"{self.agro_test.name} x{self.quantity}"


class OrderTestParameter(models.Model):
    order_item = models.ForeignKey(OrderItem, on_delete=models.CASCADE)
    parameter = models.ForeignKey(TestParameter, on_delete=models.PROTECT)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["order_item", "parameter"],
                name="uniq_order_item_parameter",
            ),
        ]


# ============================================================
# Report
# ============================================================
class Report(WorkflowWriteGuardMixin, TimeStampedModel):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        PENDING_REVIEW = "PENDING_REVIEW", "Pending review"
        APPROVED = "APPROVED", "Approved"
        ISSUED = "ISSUED", "Issued"
        REJECTED = "REJECTED", "Rejected"

    # One report per order; this is what keeps concurrent completions honest.
    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="report")
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="reports")
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reports",
    )
    generated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="generated_reports",
    )
    report_number = models.CharField(max_length=64, unique=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
        editable=False,
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.report_number


# ============================================================
# Sample
# ============================================================
class Sample(WorkflowWriteGuardMixin, TimeStampedModel):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        IN_LAB = "IN_LAB", "In lab"
        TESTING = "TESTING", "Testing"
        TEST_COMPLETED = "TEST_COMPLETED", "Test completed"
        REPORT_READY = "REPORT_READY", "Report ready"
        ISSUED = "ISSUED", "Issued"

    GUARDED_FIELDS = ("status", "report_id")

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="samples")
    order_item = models.ForeignKey(OrderItem, on_delete=models.CASCADE, related_name="samples")
    sample_code = models.CharField(max_length=64, unique=True)
    sample_type = models.CharField(max_length=20, choices=SampleType.choices)
    sample_category = models.CharField(
        max_length=20,
        choices=[(SoilCategory.UPLAND, "Upland"), (SoilCategory.WETLAND, "Wetland")],
        null=True,
        blank=True,
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
        editable=False,
    )
    report = models.ForeignKey(
        Report,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="samples",
    )

    collection_date = models.DateField(null=True, blank=True)
    collection_location = models.CharField(max_length=255, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "status"], name="sample_order_status_idx"),
        ]

    def __str__(self):
        return self.sample_code

    def ordered_parameter_ids(self):
        return list(self.order_item.parameters.values_list("id", flat=True))

    def is_fully_measured(self) -> bool:
        """Every ordered parameter has a result. Nothing ordered means never."""
        ordered = self.ordered_parameter_ids()
        if not ordered:
            return False
        return self.test_results.filter(parameter_id__in=ordered).count() == len(ordered)


# ============================================================
# Test result
# ============================================================
class TestResult(TimeStampedModel):
    __test__ = False

    sample = models.ForeignKey(Sample, on_delete=models.CASCADE, related_name="test_results")
    parameter = models.ForeignKey(TestParameter, on_delete=models.PROTECT, related_name="results")
    value = models.FloatField()

    interpretation = models.CharField(max_length=255, null=True, blank=True)
    upland_interpretation = models.CharField(max_length=255, null=True, blank=True)
    wetland_interpretation = models.CharField(max_length=255, null=True, blank=True)

    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recorded_results",
    )

    class Meta:
        ordering = ["sample", "parameter"]
        constraints = [
            models.UniqueConstraint(
                fields=["sample", "parameter"],
                name="uniq_result_sample_parameter",
            ),
        ]

    def __str__(self):
        return f"{self.sample_id}/{self.parameter_id} = {self.value}"
