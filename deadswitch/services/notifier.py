import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from deadswitch.config import Settings
from deadswitch.utils.formatting import format_duration

logger = logging.getLogger("notifier")

CHECK_IN_SUBJECT = "We haven't heard from you in a while!"
CHECK_IN_TEMPLATE = "check-in request"


class Notifier(Protocol):
    async def send_prompt(self, recipients: Sequence[str], token: str, time_to_respond: timedelta) -> bool: ...

    async def send_content(self, recipients: Sequence[str], subject: str, content: str) -> bool: ...


def check_in_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}?confirmation={token}"


def _split_to_cc(recipients: Sequence[str]) -> tuple[str, List[str]]:
    """First address is the primary recipient; the rest are carbon-copied."""
    if not recipients:
        raise ValueError("at least one recipient is required")
    return recipients[0], list(recipients[1:])


class LogNotifier:
    """Development notifier: writes what would have been sent to the log."""

    def __init__(self, check_in_base_url: str = "http://localhost:5173"):
        self.check_in_base_url = check_in_base_url

    async def send_prompt(self, recipients: Sequence[str], token: str, time_to_respond: timedelta) -> bool:
        logger.info(
            "[log notifier] check-in request to %s, link=%s, respond within %s",
            ", ".join(recipients),
            check_in_link(self.check_in_base_url, token),
            format_duration(time_to_respond),
        )
        return True

    async def send_content(self, recipients: Sequence[str], subject: str, content: str) -> bool:
        logger.info("[log notifier] content message %r to %s (%d chars)", subject, ", ".join(recipients), len(content))
        return True


class MailgunNotifier:
    """Sends e-mail through the Mailgun REST API."""

    def __init__(
        self,
        *,
        api_key: str,
        domain: str,
        sender: str,
        check_in_base_url: str,
        api_base_url: str = "https://api.mailgun.net/v3",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.domain = domain
        self.sender = sender
        self.check_in_base_url = check_in_base_url
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailgunNotifier":
        missing = [
            name
            for name, value in (
                ("MAILGUN_API_KEY", settings.mailgun_api_key),
                ("MAILGUN_DOMAIN", settings.mailgun_domain),
                ("MAILGUN_SENDER", settings.mailgun_sender),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"NOTIFIER_BACKEND=mailgun requires {', '.join(missing)}")
        return cls(
            api_key=settings.mailgun_api_key,
            domain=settings.mailgun_domain,
            sender=settings.mailgun_sender,
            check_in_base_url=settings.check_in_base_url,
            api_base_url=settings.mailgun_api_base_url,
            timeout=settings.notifier_timeout_seconds,
        )

    @property
    def messages_url(self) -> str:
        return f"{self.api_base_url}/{self.domain}/messages"

    async def send_prompt(self, recipients: Sequence[str], token: str, time_to_respond: timedelta) -> bool:
        logger.info("Sending check-in message")
        to, cc = _split_to_cc(recipients)
        variables = {
            "CHECK_IN_LINK": check_in_link(self.check_in_base_url, token),
            "TIME_TO_RESPOND": format_duration(time_to_respond),
        }
        data = self._base_form(to, cc, CHECK_IN_SUBJECT)
        data["template"] = CHECK_IN_TEMPLATE
        data["h:X-Mailgun-Variables"] = json.dumps(variables)
        sent = await self._post(data)
        logger.info("Check-in message sent successfully: %s", sent)
        return sent

    async def send_content(self, recipients: Sequence[str], subject: str, content: str) -> bool:
        logger.info("Sending HTML content message")
        to, cc = _split_to_cc(recipients)
        data = self._base_form(to, cc, subject)
        data["html"] = content
        sent = await self._post(data)
        logger.info("Content message sent successfully: %s", sent)
        return sent

    def _base_form(self, to: str, cc: List[str], subject: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "from": f"Dead Switch <{self.sender}>",
            "to": to,
            "subject": subject,
        }
        if cc:
            data["cc"] = ",".join(cc)
        return data

    async def _post(self, data: Dict[str, Any]) -> bool:
        logger.debug("Mailgun URL: %s", self.messages_url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.messages_url, data=data, auth=("api", self.api_key))
                resp.raise_for_status()
                return True
        except httpx.HTTPStatusError as e:
            logger.error("Mailgun rejected message (%s): %s", e.response.status_code, e.response.text[:200])
        except httpx.HTTPError as e:
            logger.error("Mailgun request failed: %s", e)
        return False


def build_notifier(settings: Settings) -> Notifier:
    backend = (settings.notifier_backend or "log").strip().lower()
    if backend == "mailgun":
        return MailgunNotifier.from_settings(settings)
    if backend != "log":
        logger.warning("Unknown NOTIFIER_BACKEND %r, falling back to log notifier", settings.notifier_backend)
    return LogNotifier(settings.check_in_base_url)
