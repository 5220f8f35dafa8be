"""Notification email delivery."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

from cardstudio.utils.retry import retry_async

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


@dataclass(slots=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class EmailProvider:
    """Sends through Resend when configured, otherwise only logs the message."""

    def __init__(self, *, session: httpx.AsyncClient | None = None) -> None:
        self.provider = os.environ.get("ESP_PROVIDER", "log")
        self.resend_api_key = os.environ.get("RESEND_API_KEY")
        self.sender = os.environ.get("EMAIL_FROM", "Card Studio <cards@example.com>")
        self._session = session

    async def send(self, message: EmailMessage) -> None:
        if self.provider != "resend" or not self.resend_api_key:
            logger.info("Email (log) to %s: %s", message.to, message.subject)
            return
        if self._session is not None:
            await self._post(self._session, message)
            return
        async with httpx.AsyncClient(timeout=15.0) as session:
            await self._post(session, message)

    @retry_async
    async def _post(self, session: httpx.AsyncClient, message: EmailMessage) -> None:
        response = await session.post(
            RESEND_URL,
            json={"from": self.sender, "to": [message.to], "subject": message.subject, "html": message.html},
            headers={"Authorization": f"Bearer {self.resend_api_key}"},
        )
        response.raise_for_status()
        logger.info("Sent email to %s via resend", message.to)
