# agrolab/tests/conftest.py

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, List, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from rest_framework.test import APIClient

from agrolab.models import (
    AgroTest,
    Client,
    ComparisonRule,
    Invoice,
    Order,
    OrderItem,
    Report,
    Sample,
    TestParameter,
    TestResult,
)


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        # DRF's force_authenticate(user=None) calls self.logout() internally.
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture
def user_admin(db):
    User = get_user_model()
    user, _ = User.objects.get_or_create(username="admin", defaults={"is_staff": True})
    user.set_password("pass123")
    user.is_staff = True
    user.save(update_fields=["password", "is_staff"])
    return user


@pytest.fixture
def user_technician(db):
    User = get_user_model()
    user, _ = User.objects.get_or_create(username="labtech", defaults={"is_staff": False})
    user.set_password("pass123")
    user.save(update_fields=["password"])
    return user


# ===============================================================
# Catalog
# ===============================================================

def make_parameter(agro_test: AgroTest, name: str, rules: List[Dict[str, Any]], unit: str = "") -> TestParameter:
    param = TestParameter.objects.create(agro_test=agro_test, name=name, unit=unit)
    for position, rule in enumerate(rules):
        ComparisonRule.objects.create(parameter=param, **{"priority": position, **rule})
    return param


@pytest.fixture
def soil_test(db):
    """
    Soil test with one uncategorised parameter (pH) and one with separate
    upland / wetland scales (Nitrogen).
    """
    test = AgroTest.objects.create(name=_rand("Soil fertility"), sample_type="SOIL")
    ph = make_parameter(
        test,
        "pH",
        [
            {"kind": "LESS_THAN", "max_value": 5.5, "interpretation": "Strongly acidic"},
            {"kind": "BETWEEN", "min_value": 5.5, "max_value": 7.5, "interpretation": "Optimal"},
            {"kind": "GREATER_THAN", "min_value": 7.5, "interpretation": "Alkaline"},
        ],
    )
    nitrogen = make_parameter(
        test,
        "Nitrogen",
        [
            {"kind": "BETWEEN", "min_value": 0, "max_value": 0.09, "interpretation": "Low", "soil_category": "UPLAND"},
            {"kind": "BETWEEN", "min_value": 0.09, "max_value": 0.18, "interpretation": "Medium", "soil_category": "UPLAND"},
            {"kind": "BETWEEN", "min_value": 0, "max_value": 0.12, "interpretation": "Low", "soil_category": "WETLAND"},
            {"kind": "BETWEEN", "min_value": 0.12, "max_value": 0.27, "interpretation": "Medium", "soil_category": "WETLAND"},
        ],
        unit="%",
    )
    return {"test": test, "ph": ph, "nitrogen": nitrogen}


@pytest.fixture
def water_test(db):
    test = AgroTest.objects.create(name=_rand("Irrigation water"), sample_type="WATER")
    arsenic = make_parameter(
        test,
        "Arsenic",
        [
            {"kind": "BETWEEN", "min_value": 0, "max_value": 0.05, "interpretation": "Safe"},
            {"kind": "GREATER_THAN", "min_value": 0.05, "interpretation": "Unsafe"},
        ],
        unit="mg/L",
    )
    return {"test": test, "arsenic": arsenic}


@pytest.fixture
def fertilizer_test(db):
    test = AgroTest.objects.create(name=_rand("Urea quality"), sample_type="FERTILIZER")
    nitrogen = make_parameter(
        test,
        "Nitrogen content",
        [{"kind": "BETWEEN", "min_value": 44, "max_value": 46, "interpretation": "unadulterated"}],
        unit="%",
    )
    return {"test": test, "nitrogen": nitrogen}


# ===============================================================
# Clients / orders / samples
# ===============================================================

@pytest.fixture
def client_record(db) -> Client:
    return Client.objects.create(name="Rahim Uddin", phone="01700000001")


@pytest.fixture
def invoice(db, client_record) -> Invoice:
    return Invoice.objects.create(client=client_record, invoice_number=_rand("INV"), total_amount=500)


@pytest.fixture
def order_factory(db, client_record, invoice, user_admin) -> Callable[..., Order]:
    def _factory(**extra: Any) -> Order:
        kwargs = {"client": client_record, "invoice": invoice, "operator": user_admin}
        kwargs.update(extra)
        return Order.objects.create(**kwargs)

    return _factory


@pytest.fixture
def sample_factory(db) -> Callable[..., Sample]:
    """
    Adds an order item for `agro_test` with the given parameters and one
    sample for it.
    """

    def _factory(
        *,
        order: Order,
        agro_test: AgroTest,
        parameters: Optional[List[TestParameter]] = None,
        status: str = "PENDING",
        sample_category: Optional[str] = None,
        **extra: Any,
    ) -> Sample:
        item = OrderItem.objects.create(order=order, agro_test=agro_test)
        item.parameters.add(*(parameters or []))

        return Sample.objects.create(
            order=order,
            order_item=item,
            sample_code=_rand("SMP"),
            sample_type=agro_test.sample_type,
            sample_category=sample_category,
            status=status,
            **extra,
        )

    return _factory


@pytest.fixture
def soil_sample(order_factory, sample_factory, soil_test) -> Sample:
    order = order_factory()
    return sample_factory(
        order=order,
        agro_test=soil_test["test"],
        parameters=[soil_test["ph"], soil_test["nitrogen"]],
        sample_category="UPLAND",
    )


@pytest.fixture
def report_factory(db) -> Callable[..., Report]:
    def _factory(*, order: Order, report_number: Optional[str] = None, **extra: Any) -> Report:
        return Report.objects.create(
            order=order,
            client=order.client,
            invoice=order.invoice,
            report_number=report_number or _rand("REP"),
            **extra,
        )

    return _factory


def force_status(instance, status: str):
    """Put an object in a given state without going through the workflow."""
    instance.status = status
    instance.save(update_fields=["status"], _workflow_bypass=True)
    return instance


@pytest.fixture
def set_status() -> Callable[..., Any]:
    return force_status


def store_results(sample: Sample, value: float = 1.0) -> Sample:
    """Write a result for every ordered parameter, bypassing the recorder and the orchestrator."""
    for parameter in sample.order_item.parameters.all():
        TestResult.objects.update_or_create(sample=sample, parameter=parameter, defaults={"value": value})
    return sample


@pytest.fixture
def measured() -> Callable[..., Sample]:
    return store_results


@pytest.fixture
def parameter_factory(db) -> Callable[..., TestParameter]:
    return make_parameter
