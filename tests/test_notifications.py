import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.ledger import LedgerResult
from app.notifications import BookingPublisher, booking_payload


@pytest.fixture
def result():
    booking = SimpleNamespace(id=11, event_id=3, user_id=5, user_email="ana@example.com", seats=2, status="active")
    return LedgerResult(booking=booking, available_seats=8, event_title="Jazz Night")


def test_booking_payload(result):
    assert booking_payload(result) == {
        "booking_id": 11,
        "event_id": 3,
        "event_title": "Jazz Night",
        "user_id": 5,
        "user_email": "ana@example.com",
        "seats": 2,
        "status": "active",
    }


@pytest.mark.asyncio
async def test_push_to_queue_publishes_persistent_json(result):
    queue = MagicMock()
    queue.name = "booking_queue"
    channel = MagicMock()
    channel.declare_queue = AsyncMock(return_value=queue)
    channel.default_exchange.publish = AsyncMock()
    connection = MagicMock()
    connection.channel = AsyncMock(return_value=channel)
    connection.close = AsyncMock()

    with patch("app.notifications.connect_robust", AsyncMock(return_value=connection)) as connect:
        await BookingPublisher("amqp://broker/").push_to_queue(booking_payload(result))

    connect.assert_awaited_once_with("amqp://broker/")
    channel.declare_queue.assert_awaited_once_with("booking_queue", durable=True)
    message = channel.default_exchange.publish.await_args.args[0]
    assert json.loads(message.body)["booking_id"] == 11
    assert channel.default_exchange.publish.await_args.kwargs == {"routing_key": "booking_queue"}
    connection.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_notify_survives_broker_outage(result):
    publisher = BookingPublisher("amqp://broker/")

    with patch.object(publisher, "push_to_queue", AsyncMock(side_effect=ConnectionRefusedError())) as push:
        await publisher.notify(result)

    push.assert_awaited_once()


@pytest.mark.asyncio
async def test_notify_sends_payload(result):
    publisher = BookingPublisher("amqp://broker/", queue_name="custom")

    with patch.object(publisher, "push_to_queue", AsyncMock()) as push:
        await publisher.notify(result)

    push.assert_awaited_once_with(booking_payload(result))
