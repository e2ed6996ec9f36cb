# agrolab/models/catalog.py

from django.db import models
from django.db.models import Q

from .core import TimeStampedModel


class SampleType(models.TextChoices):
    SOIL = "SOIL", "Soil"
    WATER = "WATER", "Water"
    FERTILIZER = "FERTILIZER", "Fertilizer"


class SoilCategory(models.TextChoices):
    UPLAND = "UPLAND", "Upland"
    WETLAND = "WETLAND", "Wetland"
    BOTH = "BOTH", "Both"


class ComparisonKind(models.TextChoices):
    BETWEEN = "BETWEEN", "Between"
    GREATER_THAN = "GREATER_THAN", "Greater than"
    LESS_THAN = "LESS_THAN", "Less than"


# ============================================================
# Agro test (catalog entry a client can order)
# ============================================================
class AgroTest(TimeStampedModel):
    name = models.CharField(max_length=255, unique=True)
    sample_type = models.CharField(max_length=20, choices=SampleType.choices)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.sample_type})"


# ============================================================
# Test parameter
# ============================================================
class TestParameter(TimeStampedModel):
    """A measurable quantity (e.g. pH) with a unit and interpretation rules."""

    __test__ = False

    class AnalysisType(models.TextChoices):
        ROUTINE = "ROUTINE", "Routine"
        SPECIAL = "SPECIAL", "Special"

    agro_test = models.ForeignKey(
        AgroTest,
        on_delete=models.CASCADE,
        related_name="parameters",
    )
    name = models.CharField(max_length=255)
    unit = models.CharField(max_length=50, blank=True)
    analysis_type = models.CharField(
        max_length=20,
        choices=AnalysisType.choices,
        blank=True,
    )

    class Meta:
        ordering = ["agro_test", "name"]
        unique_together = ("agro_test", "name")

    def __str__(self):
        return f"{self.name} [{self.unit}]" if self.unit else self.name


# ============================================================
# Comparison rule
# ============================================================
class ComparisonRule(models.Model):
    """
    Maps a measured value to an interpretation.

    Rules of a parameter are evaluated by ascending priority (ties by id);
    the first match wins.
    """

    parameter = models.ForeignKey(
        TestParameter,
        on_delete=models.CASCADE,
        related_name="comparison_rules",
    )
    kind = models.CharField(
        max_length=20,
        choices=ComparisonKind.choices,
        default=ComparisonKind.BETWEEN,
    )
    min_value = models.FloatField(null=True, blank=True)
    max_value = models.FloatField(null=True, blank=True)
    interpretation = models.CharField(max_length=255, blank=True)
    soil_category = models.CharField(
        max_length=20,
        choices=SoilCategory.choices,
        null=True,
        blank=True,
        help_text="Soil only. Empty means the rule applies to every category.",
    )
    priority = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["priority", "id"]
        indexes = [
            models.Index(fields=["parameter", "priority"], name="rule_param_priority_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                name="rule_between_has_both_bounds",
                condition=~Q(kind="BETWEEN") | (Q(min_value__isnull=False) & Q(max_value__isnull=False)),
            ),
            models.CheckConstraint(
                name="rule_greater_than_has_min",
                condition=~Q(kind="GREATER_THAN") | Q(min_value__isnull=False),
            ),
            models.CheckConstraint(
                name="rule_less_than_has_max",
                condition=~Q(kind="LESS_THAN") | Q(max_value__isnull=False),
            ),
        ]

    def __str__(self):
        if self.kind == ComparisonKind.BETWEEN:
            span = f"{self.min_value}..{self.max_value}"
        elif self.kind == ComparisonKind.GREATER_THAN:
            span = f"> {self.min_value}"
        else:
            span = f"< {self.max_value}"
        return f"{self.parameter_id}: {span} => {self.interpretation}"
