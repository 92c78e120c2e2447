"""Best-effort email delivery through Resend.

Nothing in here raises to the caller: failed or skipped sends are logged and
reported as False.
"""

import logging
import os
import threading
import time
from datetime import datetime, timedelta, timezone

import resend

from database import get_by_id

logger = logging.getLogger(__name__)

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Nutri Store <no-reply@nutristore.in>")
VERIFY_ATTEMPTS = 3
VERIFY_DELAY_SECONDS = 5

IST = timezone(timedelta(hours=5, minutes=30), "IST")


def local_timestamp() -> str:
    return datetime.now(IST).strftime("%d/%m/%Y, %I:%M:%S %p IST")


class Mailer:
    def __init__(self, api_key: str, sender: str):
        self.api_key = api_key
        self.sender = sender
        self.ready = False

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def verify(self, attempts: int = VERIFY_ATTEMPTS, delay: float = VERIFY_DELAY_SECONDS, sleep=time.sleep) -> bool:
        """Check the transport once at startup, retrying a fixed number of times."""
        if not self.configured:
            logger.warning("RESEND_API_KEY is not set, email notifications are disabled")
            return False
        resend.api_key = self.api_key
        for attempt in range(1, attempts + 1):
            try:
                resend.Domains.list()
            except Exception as exc:
                logger.error("Email transport check failed (%d/%d): %s", attempt, attempts, exc)
                if attempt < attempts:
                    sleep(delay)
                continue
            self.ready = True
            logger.info("Email transport is ready")
            return True
        logger.error("Max retries reached for email transport setup")
        return False

    def verify_in_background(self):
        threading.Thread(target=self.verify, name="mailer-verify", daemon=True).start()

    def send(self, to: str, subject: str, text: str) -> bool:
        if not self.ready:
            logger.warning("Email transport not ready, skipping %r to %s", subject, to)
            return False
        try:
            resend.Emails.send({"from": self.sender, "to": [to], "subject": subject, "text": text})
        except Exception as exc:
            logger.error("Email send failed for %s: %s", to, exc)
            return False
        return True


mailer = Mailer(RESEND_API_KEY, EMAIL_FROM)


def notify_user(user_id: str, subject: str, text: str) -> bool:
    """Email a user unless they have no address or turned notifications off."""
    user = get_by_id("user", user_id)
    if not user or not user.get("email") or not user.get("notifications", True):
        return False
    return mailer.send(user["email"], subject, text)
