import asyncio
import json
from email.message import EmailMessage
from html import escape

from aio_pika import connect_robust
from aiosmtplib import send

from app.config import BOOKING_QUEUE, GMAIL_APP_PASSWORD, GMAIL_USER, RABBITMQ_URL, SMTP_HOST, SMTP_PORT
from app.logger_config import logger
from app.models import BOOKING_ACTIVE, BOOKING_CANCELLED

STATUS_COPY = {
    BOOKING_ACTIVE: ("Event Booking Confirmed", "#10b981", "confirmed"),
    BOOKING_CANCELLED: ("Event Booking Cancelled", "#ef4444", "cancelled"),
}


async def worker(url: str = RABBITMQ_URL, queue_name: str = BOOKING_QUEUE):
    if not url:
        raise ValueError("RABBITMQ_URL is not set in .env")
    logger.info(f"worker started, listening on {queue_name}")

    connection = await connect_robust(url)
    async with connection:
        channel = await connection.channel()
        queue = await channel.declare_queue(queue_name, durable=True)

        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                await process_message(message)


async def process_message(message) -> bool:
    """
    Handle one queue message. A message that fails is rejected and logged so
    the consumer keeps going with the next one.
    """
    try:
        async with message.process():
            payload = json.loads(message.body)
            logger.debug(f"received booking message: {payload}")
            await handle_booking_message(payload)
    except Exception:
        logger.exception(f"dropping booking message {message.message_id}")
        return False
    return True


async def handle_booking_message(payload: dict) -> bool:
    """Email the booking owner about a committed booking change. Returns True if mail was sent."""
    user_email = payload.get("user_email")
    if not user_email:
        logger.info(f"booking {payload['booking_id']} has no contact address, skipping email")
        return False
    if not (GMAIL_USER and GMAIL_APP_PASSWORD):
        logger.warning("SMTP credentials are not configured, skipping email")
        return False

    msg = build_booking_email(payload, sender=GMAIL_USER)
    await send(
        msg,
        hostname=SMTP_HOST,
        port=SMTP_PORT,
        start_tls=True,
        username=GMAIL_USER,
        password=GMAIL_APP_PASSWORD,
    )
    logger.info(f"email for booking {payload['booking_id']} sent to {user_email}")
    return True


def build_booking_email(payload: dict, sender: str) -> EmailMessage:
    subject, status_color, status_word = STATUS_COPY.get(
        payload["status"], ("Event Booking Update", "#6366f1", payload["status"])
    )
    event_title = payload.get("event_title") or f"Event #{payload['event_id']}"
    seats = payload["seats"]
    seat_word = "seat" if seats == 1 else "seats"

    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = payload["user_email"]
    msg["Subject"] = subject

    plain_text = f"""
Hello,

Your booking has been {status_word}.

Event: {event_title}
Booking ID: {payload['booking_id']}
Seats: {seats}

Best regards,
Event Team
"""

    html_content = f"""
<!DOCTYPE html>
<html>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #f9fafb;">
    <div style="max-width: 600px; margin: 40px auto; background: #ffffff; border-radius: 12px; padding: 30px;">
        <h1 style="color: {status_color}; font-size: 22px;">{escape(subject)}</h1>
        <p>Your booking has been <strong>{status_word}</strong>.</p>
        <table style="width: 100%; border-collapse: collapse;">
            <tr><td style="color: #6b7280;">Event</td><td><strong>{escape(event_title)}</strong></td></tr>
            <tr><td style="color: #6b7280;">Booking ID</td><td>{payload['booking_id']}</td></tr>
            <tr><td style="color: #6b7280;">Seats</td><td>{seats} {seat_word}</td></tr>
        </table>
        <p style="color: #6b7280; font-size: 13px; margin-top: 30px;">Event Team</p>
    </div>
</body>
</html>
"""

    msg.set_content(plain_text)
    msg.add_alternative(html_content, subtype="html")
    return msg


if __name__ == "__main__":
    asyncio.run(worker())
