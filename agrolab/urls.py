# agrolab/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    HealthCheckView,
    OrderViewSet,
    ReportViewSet,
    SampleViewSet,
    WorkflowDefinitionView,
    WorkflowTimelineView,
    WorkflowTransitionView,
)

router = DefaultRouter()
router.register(r"samples", SampleViewSet, basename="sample")
router.register(r"orders", OrderViewSet, basename="order")
router.register(r"reports", ReportViewSet, basename="report")

urlpatterns = [
    # ---------------------------------------------------------
    # Core API
    # ---------------------------------------------------------
    path("", include(router.urls)),

    # ---------------------------------------------------------
    # System
    # ---------------------------------------------------------
    path("health/", HealthCheckView.as_view(), name="health_check"),

    # ---------------------------------------------------------
    # Workflows
    # ---------------------------------------------------------
    path("workflows/<str:kind>/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("workflows/<str:kind>/<int:pk>/timeline/", WorkflowTimelineView.as_view(), name="workflow-timeline"),
    path("workflows/<str:kind>/<int:pk>/transition/", WorkflowTransitionView.as_view(), name="workflow-transition"),
]
