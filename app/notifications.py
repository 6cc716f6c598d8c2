import json
from typing import Optional

from aio_pika import DeliveryMode, Message, connect_robust
from aio_pika.exceptions import AMQPException

from app.config import BOOKING_QUEUE, RABBITMQ_URL
from app.ledger import LedgerResult
from app.logger_config import logger


def booking_payload(result: LedgerResult) -> dict:
    booking = result.booking
    return {
        "booking_id": booking.id,
        "event_id": booking.event_id,
        "event_title": result.event_title,
        "user_id": booking.user_id,
        "user_email": booking.user_email,
        "seats": booking.seats,
        "status": booking.status,
    }


class BookingPublisher:
    """Publishes committed booking changes to the durable booking queue."""

    def __init__(self, url: str, queue_name: str = BOOKING_QUEUE):
        self.url = url
        self.queue_name = queue_name

    async def push_to_queue(self, payload: dict):
        connection = await connect_robust(self.url)
        try:
            channel = await connection.channel()
            queue = await channel.declare_queue(self.queue_name, durable=True)
            message = Message(
                json.dumps(payload).encode(),
                content_type="application/json",
                delivery_mode=DeliveryMode.PERSISTENT,
            )
            await channel.default_exchange.publish(message, routing_key=queue.name)
        finally:
            await connection.close()

    async def notify(self, result: LedgerResult):
        """
        Runs after the ledger has committed; a broker outage must not undo a
        booking, so failures are logged and dropped here.
        """
        payload = booking_payload(result)
        try:
            await self.push_to_queue(payload)
        except (AMQPException, OSError):
            logger.exception(f"could not publish booking {payload['booking_id']} ({payload['status']})")
            return
        logger.debug(f"published booking {payload['booking_id']} ({payload['status']}) to {self.queue_name}")


_publisher: Optional[BookingPublisher] = BookingPublisher(RABBITMQ_URL) if RABBITMQ_URL else None


def get_publisher() -> Optional[BookingPublisher]:
    return _publisher
