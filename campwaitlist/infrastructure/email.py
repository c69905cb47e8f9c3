"""
Notification senders.

Message bodies are plain text built from the notification payload; branded
templates belong to the marketing email service, not to the waitlist.
"""

import httpx

from campwaitlist.core.config import get_settings
from campwaitlist.core.logging import get_logger
from campwaitlist.services.interfaces.notifications import NotificationKind, NotificationSender

logger = get_logger(__name__)


def render_subject(kind: str, context: dict) -> str:
    camp_name = context.get("camp_name", "camp")
    subjects = {
        NotificationKind.JOIN_CONFIRMATION.value: f"You're on the waitlist for {camp_name}!",
        NotificationKind.OFFER_ISSUED.value: f"A spot opened up at {camp_name}!",
        NotificationKind.OFFER_EXPIRED.value: f"Your waitlist offer for {camp_name} has expired",
        NotificationKind.NEARBY_ALTERNATIVES.value: "Camps near you with spots available",
    }
    return subjects.get(kind, camp_name)


def render_text(kind: str, context: dict, payload: dict) -> str:
    greeting = f"Hi {payload.get('holder_first_name') or 'there'},"
    camper = payload.get("camper_first_name", "your camper")
    camp_name = context.get("camp_name", "")

    if kind == NotificationKind.JOIN_CONFIRMATION.value:
        body = (
            f"{camper} is #{payload['position']} on the waitlist for {camp_name} "
            f"({context.get('camp_dates')}, {context.get('location')}). "
            f"When a spot opens you will have {payload['offer_window_hours']} hours to claim it."
        )
    elif kind == NotificationKind.OFFER_ISSUED.value:
        body = (
            f"A spot opened for {camper} at {camp_name} ({context.get('camp_dates')}, "
            f"{context.get('location')}). Price: {payload['price']}.\n"
            f"Accept before {payload['offer_expires_at']}: {payload['accept_url']}\n"
            f"Decline: {payload['decline_url']}"
        )
    elif kind == NotificationKind.OFFER_EXPIRED.value:
        body = (
            f"The offer for {camper} at {camp_name} expired. {camper} is back on the "
            f"waitlist at position #{payload['position']}."
        )
    else:
        lines = [
            f"- {c['name']} ({c['dates']}, {c['location']}): {c['spots_left']} spots left {c['register_url']}"
            for c in payload.get("camps", [])
        ]
        body = "These camps still have spots available:\n" + "\n".join(lines)

    return f"{greeting}\n\n{body}\n"


class ResendNotificationSender(NotificationSender):
    """Sends email through the Resend HTTP API."""

    def __init__(self, api_key: str, sender: str, api_url: str, client: httpx.AsyncClient | None = None):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def send(self, kind: str, recipient: str, context: dict, payload: dict) -> bool:
        try:
            response = await self.client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": render_subject(kind, context),
                    "text": render_text(kind, context, payload),
                    "tags": [{"name": "kind", "value": kind}],
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("email_send_failed", kind=kind, recipient=recipient, error=str(e))
            return False

        logger.info("email_sent", kind=kind, recipient=recipient, message_id=response.json().get("id"))
        return True

    async def aclose(self) -> None:
        await self.client.aclose()


class LoggingNotificationSender(NotificationSender):
    """Development sender: the message ends up in the log stream."""

    async def send(self, kind: str, recipient: str, context: dict, payload: dict) -> bool:
        logger.info(
            "notification_logged",
            kind=kind,
            recipient=recipient,
            subject=render_subject(kind, context),
            body=render_text(kind, context, payload),
        )
        return True


def build_notification_sender() -> NotificationSender:
    settings = get_settings()
    if settings.RESEND_API_KEY:
        return ResendNotificationSender(
            api_key=settings.RESEND_API_KEY,
            sender=settings.EMAIL_FROM,
            api_url=settings.RESEND_API_URL,
        )
    return LoggingNotificationSender()
