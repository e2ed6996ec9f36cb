import re

import pytest
from django.db import transaction
from django.db.transaction import TransactionManagementError

from agrolab.models import AuditLog, Order, Report, Sample, WorkflowTransition
from agrolab.services.completion import generate_report_number, try_complete_order
from agrolab.services.result_recorder import record_results
from agrolab.workflows.executor import execute_transition


def _measure_all(sample, params, recorded_by=None, value="6"):
    return record_results(
        sample_id=sample.pk,
        submissions=[{"parameter_id": p.pk, "value": value} for p in params],
        recorded_by=recorded_by,
    )


@pytest.mark.django_db
def test_fully_measured_single_sample_generates_report(soil_sample, soil_test, user_technician):
    _measure_all(soil_sample, [soil_test["ph"], soil_test["nitrogen"]], recorded_by=user_technician)

    soil_sample.refresh_from_db()
    order = Order.objects.get(pk=soil_sample.order_id)
    report = Report.objects.get(order=order)

    assert order.status == Order.Status.REPORT_GENERATED
    assert soil_sample.status == Sample.Status.REPORT_READY
    assert soil_sample.report_id == report.pk
    assert report.status == Report.Status.DRAFT
    assert report.client_id == order.client_id
    assert report.invoice_id == order.invoice_id
    assert report.generated_by == user_technician
    assert re.fullmatch(r"REP-\d+-\d{1,3}", report.report_number)


@pytest.mark.django_db
def test_order_waits_for_every_sample(order_factory, sample_factory, soil_test, water_test):
    order = order_factory()
    soil = sample_factory(order=order, agro_test=soil_test["test"], parameters=[soil_test["ph"]])
    water = sample_factory(order=order, agro_test=water_test["test"], parameters=[water_test["arsenic"]])

    _measure_all(soil, [soil_test["ph"]])

    soil.refresh_from_db()
    order.refresh_from_db()
    assert soil.status == Sample.Status.TEST_COMPLETED
    assert order.status == Order.Status.PENDING
    assert not Report.objects.filter(order=order).exists()

    _measure_all(water, [water_test["arsenic"]], value="0.01")

    order.refresh_from_db()
    report = Report.objects.get(order=order)
    assert order.status == Order.Status.REPORT_GENERATED
    assert set(report.samples.values_list("pk", flat=True)) == {soil.pk, water.pk}
    assert set(Sample.objects.filter(order=order).values_list("status", flat=True)) == {Sample.Status.REPORT_READY}


@pytest.mark.django_db
def test_generated_by_falls_back_to_order_operator(soil_sample, soil_test, user_admin):
    _measure_all(soil_sample, [soil_test["ph"], soil_test["nitrogen"]])

    report = Report.objects.get(order_id=soil_sample.order_id)
    assert report.generated_by == user_admin


@pytest.mark.django_db
def test_completion_is_exactly_once(soil_sample, soil_test, set_status):
    _measure_all(soil_sample, [soil_test["ph"], soil_test["nitrogen"]])
    report = Report.objects.get(order_id=soil_sample.order_id)

    # Samples are REPORT_READY now, so a second run changes nothing.
    assert try_complete_order(order_id=soil_sample.order_id) is None
    assert Report.objects.filter(order_id=soil_sample.order_id).count() == 1

    # Re-entry after every sample is test-completed again refreshes the same report.
    set_status(soil_sample, Sample.Status.TEST_COMPLETED)
    again = try_complete_order(order_id=soil_sample.order_id)

    assert again.pk == report.pk
    assert again.report_number == report.report_number
    assert again.updated_at >= report.updated_at
    assert Report.objects.filter(order_id=soil_sample.order_id).count() == 1

    transitions = WorkflowTransition.objects.filter(kind="order", object_id=soil_sample.order_id)
    assert list(transitions.values_list("to_status", flat=True)) == [Order.Status.REPORT_GENERATED]


@pytest.mark.django_db
def test_order_without_samples_is_not_completed(order_factory):
    order = order_factory()
    assert try_complete_order(order_id=order.pk) is None
    order.refresh_from_db()
    assert order.status == Order.Status.PENDING


@pytest.mark.django_db
def test_zero_parameter_sample_is_never_trivially_complete(order_factory, sample_factory, soil_test):
    order = order_factory()
    sample = sample_factory(order=order, agro_test=soil_test["test"], parameters=[])

    assert try_complete_order(order_id=order.pk) is None
    sample.refresh_from_db()
    assert sample.status == Sample.Status.PENDING


@pytest.mark.django_db
def test_cancelled_order_is_not_completed(soil_sample, set_status, measured):
    order = Order.objects.get(pk=soil_sample.order_id)
    set_status(order, Order.Status.CANCELLED)
    set_status(measured(soil_sample), Sample.Status.TEST_COMPLETED)

    assert try_complete_order(order_id=order.pk) is None
    assert not Report.objects.filter(order=order).exists()


@pytest.mark.django_db
def test_remeasurement_reworks_report(soil_sample, soil_test, user_admin):
    params = [soil_test["ph"], soil_test["nitrogen"]]
    _measure_all(soil_sample, params)
    report = Report.objects.get(order_id=soil_sample.order_id)

    execute_transition(instance=report, kind="report", new_status="PENDING_REVIEW", user=user_admin)
    report.refresh_from_db()
    assert report.status == Report.Status.PENDING_REVIEW

    record_results(sample_id=soil_sample.pk, submissions=[{"parameter_id": soil_test["ph"].pk, "value": "4.0"}])

    soil_sample.refresh_from_db()
    report.refresh_from_db()
    assert soil_sample.status == Sample.Status.REPORT_READY
    assert report.status == Report.Status.DRAFT
    assert Report.objects.filter(order_id=soil_sample.order_id).count() == 1

    sample_path = list(
        WorkflowTransition.objects.filter(kind="sample", object_id=soil_sample.pk).values_list("to_status", flat=True)
    )
    assert sample_path == ["TEST_COMPLETED", "REPORT_READY", "TEST_COMPLETED", "REPORT_READY"]


@pytest.mark.django_db
def test_completion_writes_audit_entries(soil_sample, soil_test):
    _measure_all(soil_sample, [soil_test["ph"], soil_test["nitrogen"]])

    assert AuditLog.objects.filter(action="REPORT CREATED").count() == 1
    assert AuditLog.objects.filter(action__startswith="WORKFLOW ORDER").exists()
    assert AuditLog.objects.filter(action="RESULT RECORDED").count() == 2


@pytest.mark.django_db(transaction=True)
def test_orchestrator_requires_open_transaction(order_factory):
    order = order_factory()

    with pytest.raises(TransactionManagementError):
        try_complete_order(order_id=order.pk)

    with transaction.atomic():
        assert try_complete_order(order_id=order.pk) is None


def test_report_number_format():
    number = generate_report_number()
    assert re.fullmatch(r"REP-\d{13}-\d{1,3}", number)


@pytest.mark.django_db
def test_report_notification_is_sent_after_commit(
    soil_sample, soil_test, settings, mailoutbox, django_capture_on_commit_callbacks
):
    settings.REPORT_EMAIL_NOTIFICATIONS = True
    settings.REPORT_NOTIFY_EMAILS = ["lab@example.org"]

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        _measure_all(soil_sample, [soil_test["ph"], soil_test["nitrogen"]])
    assert mailoutbox == []

    for callback in callbacks:
        callback()

    assert len(mailoutbox) == 1
    report = Report.objects.get(order_id=soil_sample.order_id)
    assert mailoutbox[0].to == ["lab@example.org"]
    assert f"Order {soil_sample.order_id} report generated" in mailoutbox[0].subject
    assert report.report_number in mailoutbox[0].body


@pytest.mark.django_db
def test_no_notification_when_disabled(soil_sample, soil_test, mailoutbox, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        _measure_all(soil_sample, [soil_test["ph"], soil_test["nitrogen"]])
    assert mailoutbox == []


@pytest.mark.django_db
def test_status_alone_does_not_complete_order(soil_sample, soil_test, set_status, measured):
    set_status(soil_sample, Sample.Status.TEST_COMPLETED)

    assert try_complete_order(order_id=soil_sample.order_id) is None
    assert Report.objects.filter(order_id=soil_sample.order_id).count() == 0
    assert Order.objects.get(pk=soil_sample.order_id).status == Order.Status.PENDING

    measured(soil_sample)
    report = try_complete_order(order_id=soil_sample.order_id)

    assert report is not None
    soil_sample.refresh_from_db()
    assert soil_sample.report_id == report.pk


@pytest.mark.django_db
def test_concurrent_last_samples_share_one_report(
    order_factory, sample_factory, soil_test, water_test, report_factory, monkeypatch
):
    from agrolab.services import completion

    order = order_factory()
    soil = sample_factory(order=order, agro_test=soil_test["test"], parameters=[soil_test["ph"]])
    water = sample_factory(order=order, agro_test=water_test["test"], parameters=[water_test["arsenic"]])
    _measure_all(soil, [soil_test["ph"]])

    # The other submission committed its report after this one read the order.
    competing = report_factory(order=order)
    real_upsert = completion.upsert_report

    def stale_upsert(*, order, existing=None, generated_by=None):
        return real_upsert(order=order, existing=None, generated_by=generated_by)

    monkeypatch.setattr(completion, "upsert_report", stale_upsert)

    _measure_all(water, [water_test["arsenic"]], value="0.01")

    assert list(Report.objects.filter(order=order).values_list("pk", flat=True)) == [competing.pk]
    soil.refresh_from_db()
    water.refresh_from_db()
    assert soil.report_id == competing.pk
    assert water.report_id == competing.pk
    assert {soil.status, water.status} == {Sample.Status.REPORT_READY}
    order.refresh_from_db()
    assert order.status == Order.Status.REPORT_GENERATED
