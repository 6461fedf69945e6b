from types import SimpleNamespace

import pytest

from domain.payment.events import PaymentCompleted, PaymentFailed
from infrastructure.adapters.notification_sink import CeleryNotificationSink
from infrastructure.tasks import celery_app
from infrastructure.tasks.config.beat import CELERY_BEAT_SCHEDULE
from infrastructure.tasks.payment_tasks import sweep_stale_payments
from infrastructure.tasks.tasks.notifications import deliver_payment_event
from infrastructure.tasks.utils.dispatcher import PAYMENT_EVENT_TASK, TaskDispatcher


def _event() -> PaymentCompleted:
    return PaymentCompleted(
        payment_id="PAY_1",
        booking_id="booking-1",
        client_id="client-1",
        professional_id="pro-1",
        provider="wompi",
        amount=119_000,
        invoice_id="INV_1",
    )


def test_event_serialization():
    data = _event().to_dict()
    assert data["event"] == "payment_completed"
    assert data["amount"] == 119_000
    assert isinstance(data["occurred_at"], str)
    assert PaymentFailed(payment_id="p", booking_id="b", client_id="c", professional_id="x", provider="w").name == "payment_failed"


def test_deliver_payment_event_reports_recipients():
    result = deliver_payment_event.apply(kwargs={"event": _event().to_dict()}).get()
    assert result["recipients"] == ["client-1", "pro-1"]


def test_dispatcher_runs_locally_when_eager(monkeypatch):
    calls = []
    task = celery_app.tasks[PAYMENT_EVENT_TASK]
    monkeypatch.setattr(celery_app.conf, "task_always_eager", True)
    monkeypatch.setattr(task, "apply", lambda args=(), kwargs=None: calls.append(kwargs))
    monkeypatch.setattr(celery_app, "send_task", lambda *a, **kw: pytest.fail("send_task used in eager mode"))

    TaskDispatcher().send_payment_event({"event": "payment_failed"})

    assert calls == [{"event": {"event": "payment_failed"}}]


def test_dispatcher_sends_to_broker(monkeypatch):
    sent = []
    monkeypatch.setattr(celery_app.conf, "task_always_eager", False)
    monkeypatch.setattr(celery_app, "send_task", lambda name, args=(), kwargs=None: sent.append((name, kwargs)))

    TaskDispatcher().enqueue("payments.sweep_stale", kwargs={"limit": 10})

    assert sent == [("payments.sweep_stale", {"limit": 10})]


def test_celery_sink_serializes_events():
    dispatched = []
    sink = CeleryNotificationSink(dispatcher=SimpleNamespace(send_payment_event=dispatched.append))

    sink.notify(_event())

    assert dispatched[0]["event"] == "payment_completed"
    assert dispatched[0]["invoice_id"] == "INV_1"


def test_sweep_task_uses_payment_services(monkeypatch):
    closed = []

    async def sweep(limit):
        return ["PAY_stale"][:limit]

    async def aclose():
        closed.append(True)

    services = SimpleNamespace(lifecycle=SimpleNamespace(sweep_stale_payments=sweep), aclose=aclose)
    monkeypatch.setattr("infrastructure.bootstrap.build_payment_services", lambda: services)

    result = sweep_stale_payments.apply(kwargs={"limit": 5}).get()

    assert result == {"failed": ["PAY_stale"]}
    assert closed == [True]


def test_sweep_is_scheduled_on_low_queue():
    entry = CELERY_BEAT_SCHEDULE["payments-sweep-stale"]
    assert entry["task"] == "payments.sweep_stale"
    assert entry["options"]["queue"] == "low"
    assert celery_app.conf.task_routes["payments.*"] == {"queue": "low"}
