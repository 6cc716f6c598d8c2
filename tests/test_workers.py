import json
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app import workers

PAYLOAD = {
    "booking_id": 11,
    "event_id": 3,
    "event_title": "Jazz Night",
    "user_id": 5,
    "user_email": "ana@example.com",
    "seats": 2,
    "status": "active",
}


def test_confirmation_email():
    msg = workers.build_booking_email(PAYLOAD, sender="events@example.com")

    assert msg["To"] == "ana@example.com"
    assert msg["From"] == "events@example.com"
    assert msg["Subject"] == "Event Booking Confirmed"
    plain = msg.get_body(preferencelist=("plain",)).get_content()
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "Jazz Night" in plain
    assert "Seats: 2" in plain
    assert "2 seats" in html


def test_cancellation_email_escapes_title():
    payload = dict(PAYLOAD, status="cancelled", event_title="<Rock & Roll>", seats=1)

    msg = workers.build_booking_email(payload, sender="events@example.com")

    assert msg["Subject"] == "Event Booking Cancelled"
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "&lt;Rock &amp; Roll&gt;" in html
    assert "1 seat<" in html


@pytest.mark.asyncio
async def test_handle_message_sends_mail(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(workers, "send", send)
    monkeypatch.setattr(workers, "GMAIL_USER", "events@example.com")
    monkeypatch.setattr(workers, "GMAIL_APP_PASSWORD", "secret")

    assert await workers.handle_booking_message(PAYLOAD) is True

    send.assert_awaited_once()
    assert send.await_args.kwargs["username"] == "events@example.com"
    assert send.await_args.kwargs["start_tls"] is True


@pytest.mark.asyncio
async def test_handle_message_without_address(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(workers, "send", send)
    monkeypatch.setattr(workers, "GMAIL_USER", "events@example.com")
    monkeypatch.setattr(workers, "GMAIL_APP_PASSWORD", "secret")

    assert await workers.handle_booking_message(dict(PAYLOAD, user_email=None)) is False

    send.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_message_without_smtp_credentials(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(workers, "send", send)
    monkeypatch.setattr(workers, "GMAIL_USER", None)

    assert await workers.handle_booking_message(PAYLOAD) is False

    send.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_needs_broker_url():
    with pytest.raises(ValueError):
        await workers.worker(url=None)


class FakeMessage:
    def __init__(self, payload, message_id):
        self.body = json.dumps(payload).encode()
        self.message_id = message_id
        self.outcome = None

    @asynccontextmanager
    async def process(self):
        try:
            yield
        except Exception:
            self.outcome = "rejected"
            raise
        self.outcome = "acked"


class FakeQueue:
    name = "booking_queue"

    def __init__(self, messages):
        self.messages = messages

    @asynccontextmanager
    async def iterator(self):
        async def _iterate():
            for message in self.messages:
                yield message

        yield _iterate()


class FakeConnection:
    def __init__(self, queue):
        self._channel = SimpleNamespace(declare_queue=AsyncMock(return_value=queue))

    async def channel(self):
        return self._channel

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_worker_keeps_consuming_after_a_failed_message(monkeypatch):
    broken = FakeMessage(dict(PAYLOAD, booking_id=1), "m-1")
    healthy = FakeMessage(dict(PAYLOAD, booking_id=2), "m-2")
    handled = []

    async def handle(payload):
        handled.append(payload["booking_id"])
        if payload["booking_id"] == 1:
            raise OSError("smtp down")
        return True

    monkeypatch.setattr(workers, "handle_booking_message", handle)
    monkeypatch.setattr(
        workers, "connect_robust", AsyncMock(return_value=FakeConnection(FakeQueue([broken, healthy])))
    )

    await workers.worker(url="amqp://broker/")

    assert handled == [1, 2]
    assert broken.outcome == "rejected"
    assert healthy.outcome == "acked"


@pytest.mark.asyncio
async def test_unreadable_message_is_dropped():
    message = FakeMessage({}, "m-3")
    message.body = b"not json"

    assert await workers.process_message(message) is False
    assert message.outcome == "rejected"
