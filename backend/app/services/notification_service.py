"""Member notification service.

Every notice is written to the in-app Notification table and, when the member
has a usable phone number, texted through Twilio. Delivery is best-effort:
failures are logged and never reach the operation that triggered the notice.
"""

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select
from twilio.rest import Client

from app.models.member import Member
from app.models.notification import Notification

logger = logging.getLogger(__name__)


def format_e164(phone: str, default_country: str = "82") -> str:
    """
    Normalize a phone number to E.164 format.

    Accepts:
      - +821012345678 (already E.164)
      - 010-1234-5678 (domestic mobile, leading trunk 0)
      - 01012345678
      - 821012345678  (missing +)

    Raises:
      - ValueError if phone can't be parsed
    """
    if not phone or not phone.strip():
        raise ValueError("Phone number is empty")

    digits = re.sub(r"[^\d]", "", phone)

    if phone.strip().startswith("+") and len(digits) >= 8:
        return f"+{digits}"
    if digits.startswith("0") and len(digits) in (10, 11):
        # Domestic format: drop trunk prefix
        return f"+{default_country}{digits[1:]}"
    if digits.startswith(default_country) and len(digits) in (11, 12):
        return f"+{digits}"
    raise ValueError(
        f"Cannot parse phone number: '{phone}'. "
        f"Expected domestic mobile number or E.164 format."
    )


def validate_e164(phone: str) -> bool:
    """Check if a phone number is valid E.164 format."""
    return bool(re.match(r"^\+[1-9]\d{6,14}$", phone))


class TwilioService:
    """
    Wrapper around Twilio REST API for sending SMS.

    Reads credentials from environment variables:
      - TWILIO_ACCOUNT_SID
      - TWILIO_AUTH_TOKEN
      - TWILIO_FROM_NUMBER

    If credentials are not set, operates in dry-run mode
    (logs messages but doesn't send).
    """

    def __init__(self):
        self.account_sid = os.getenv("TWILIO_ACCOUNT_SID", "")
        self.auth_token = os.getenv("TWILIO_AUTH_TOKEN", "")
        self.from_number = os.getenv("TWILIO_FROM_NUMBER", "")
        self.client = None
        self.dry_run = False

        if self.account_sid and self.auth_token and self.from_number:
            try:
                self.client = Client(self.account_sid, self.auth_token)
                logger.info("Twilio client initialized successfully.")
            except Exception as e:
                logger.error(f"Failed to initialize Twilio client: {e}")
                self.dry_run = True
        else:
            logger.warning(
                "Twilio credentials not configured. Running in dry-run mode. "
                "Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER."
            )
            self.dry_run = True

    def send_sms(self, to: str, body: str) -> dict:
        """
        Send a single SMS message.

        Returns:
            dict with keys: sid, status, error
        """
        if not validate_e164(to):
            return {"sid": None, "status": "failed", "error": f"Invalid phone number format: {to}"}

        # Twilio max is 1600 chars
        if len(body) > 1600:
            body = body[:1597] + "..."

        if self.dry_run:
            logger.info(f"[DRY RUN] SMS to {to}: {body[:80]}...")
            return {
                "sid": f"DRY_RUN_{datetime.now(timezone.utc).isoformat()}",
                "status": "dry_run",
                "error": None,
            }

        try:
            message = self.client.messages.create(body=body, from_=self.from_number, to=to)
            logger.info(f"SMS sent to {to}: SID={message.sid}, status={message.status}")
            return {"sid": message.sid, "status": message.status, "error": None}
        except Exception as e:
            logger.error(f"Failed to send SMS to {to}: {e}")
            return {"sid": None, "status": "failed", "error": str(e)}

    @property
    def is_configured(self) -> bool:
        return not self.dry_run


_twilio_service: Optional[TwilioService] = None


def get_twilio_service() -> TwilioService:
    """Get or create the singleton TwilioService instance."""
    global _twilio_service
    if _twilio_service is None:
        _twilio_service = TwilioService()
    return _twilio_service


@dataclass
class Notice:
    """A notification waiting to be delivered after the triggering operation commits."""

    member_ids: List[int]
    title: str
    body: str
    url: Optional[str] = None
    type: str = "general"
    broadcast: bool = False  # member_ids ignored; every active non-admin member


class NotificationService:
    def __init__(self, session: Session, sms: Optional[TwilioService] = None):
        self.session = session
        self.sms = sms if sms is not None else get_twilio_service()

    def notify(
        self,
        member_ids: Iterable[int],
        title: str,
        body: str,
        url: Optional[str] = None,
        type: str = "general",
    ) -> int:
        """
        Store and text a notice to each member. Returns the number of members
        whose in-app notification was stored. Never raises.
        """
        stored = 0
        for member_id in dict.fromkeys(member_ids):
            try:
                member = self.session.get(Member, member_id)
                if member is None or not member.is_active:
                    continue
                notification = Notification(member_id=member_id, type=type, title=title, body=body, url=url)
                notification.sms_status = self._text_member(member, f"{title}\n{body}")
                self.session.add(notification)
                self.session.commit()
                stored += 1
            except Exception as e:
                self.session.rollback()
                logger.error(f"Failed to notify member {member_id} ({title!r}): {e}")
        return stored

    def notify_all_active(self, title: str, body: str, url: Optional[str] = None, type: str = "general") -> int:
        try:
            member_ids = self.session.exec(
                select(Member.id).where(Member.is_active == True, Member.is_admin == False)  # noqa: E712
            ).all()
        except Exception as e:
            logger.error(f"Failed to load members for broadcast ({title!r}): {e}")
            return 0
        return self.notify(member_ids, title, body, url=url, type=type)

    def deliver(self, notice: Notice) -> int:
        if notice.broadcast:
            return self.notify_all_active(notice.title, notice.body, url=notice.url, type=notice.type)
        return self.notify(notice.member_ids, notice.title, notice.body, url=notice.url, type=notice.type)

    def _text_member(self, member: Member, body: str) -> str:
        if not member.phone or not member.phone.strip():
            return "skipped"
        try:
            phone = format_e164(member.phone)
        except ValueError:
            logger.warning(f"Skipping invalid phone number on member {member.id}: '{member.phone}'")
            return "skipped"
        try:
            return self.sms.send_sms(phone, body)["status"]
        except Exception as e:
            logger.error(f"SMS to member {member.id} failed: {e}")
            return "failed"


def deliver_notices(notices: List[Notice], bind: Engine) -> None:
    """Background-task entry point: deliver notices on a fresh session bound to `bind`."""
    if not notices:
        return
    with Session(bind) as session:
        service = NotificationService(session)
        for notice in notices:
            service.deliver(notice)


def dispatch_notices(background_tasks, session: Session, notices: List[Notice]) -> None:
    """Queue notices on a FastAPI BackgroundTasks so they go out after the response."""
    if notices:
        background_tasks.add_task(deliver_notices, notices, session.get_bind())
