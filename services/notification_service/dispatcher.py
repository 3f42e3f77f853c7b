"""
Transactional email dispatch through the Brevo HTTP API.

Sending is best-effort: every public method returns a DispatchResult and
never raises, so a slow or failing email provider cannot undo an order that
is already placed or paid. Transient network failures are retried with a
linear backoff (attempt x base delay); anything the provider rejects
outright (bad key, malformed payload, quota) fails on the first attempt.
"""
import asyncio
import errno
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
import structlog

from shared.config.settings import Settings
from shared.errors import NotificationError
from shared.observability import ecomm_notification_attempts_total

from .schemas import OrderConfirmationPayload
from .templates import (
    order_confirmation_subject,
    render_order_confirmation,
    render_welcome,
    welcome_subject,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

TRANSIENT_ERROR_CODES = {"ECONNRESET", "ECONNREFUSED", "ENOTFOUND", "EAI_AGAIN", "ETIMEDOUT"}
TRANSIENT_ERRNOS = {errno.ECONNRESET, errno.ECONNREFUSED, errno.ETIMEDOUT}
TRANSIENT_MESSAGE_MARKERS = ("timeout", "timed out", "socket hang up", "server disconnected")

TRANSIENT_EXCEPTIONS = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionResetError,
    ConnectionRefusedError,
    socket.gaierror,
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


@dataclass
class DispatchResult:
    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempts: int = 0
    message_id: Optional[str] = None


def error_code_of(exc: BaseException) -> Optional[str]:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code
    err = getattr(exc, "errno", None)
    if isinstance(err, int) and err in errno.errorcode:
        return errno.errorcode[err]
    if exc.__cause__ is not None:
        return error_code_of(exc.__cause__)
    message = str(exc).upper()
    for known in TRANSIENT_ERROR_CODES:
        if known in message:
            return known
    return None


def is_transient_error(exc: BaseException) -> bool:
    """Connection reset/refused, DNS failure, timeout and 'socket hang up' are retryable."""
    if isinstance(exc, NotificationError):
        return exc.transient
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    if getattr(exc, "errno", None) in TRANSIENT_ERRNOS:
        return True
    if error_code_of(exc) in TRANSIENT_ERROR_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


class NotificationDispatcher:

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        reply_to: str = "",
        base_url: str = "https://api.brevo.com/v3",
        timeout_seconds: float = 60.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = 3.0,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.sender = {"name": sender_name, "email": sender_email}
        self.reply_to = reply_to
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.settings = settings or Settings.from_env()
        self._sleep = sleep
        # The per-attempt deadline is enforced by asyncio.wait_for, not the client
        self._client = httpx.AsyncClient(base_url=base_url, timeout=None, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationDispatcher":
        if not settings.brevo_api_key:
            logger.warning("email_provider_not_configured", detail="BREVO_API_KEY is not set")
        return cls(
            api_key=settings.brevo_api_key,
            sender_email=settings.brevo_from_email,
            sender_name=settings.brevo_from_name,
            reply_to=settings.brevo_reply_to,
            base_url=settings.brevo_api_url,
            timeout_seconds=settings.brevo_timeout_ms / 1000,
            max_attempts=settings.email_max_attempts,
            backoff_seconds=settings.email_backoff_seconds,
            settings=settings,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send_order_confirmation(self, payload: OrderConfirmationPayload) -> DispatchResult:
        log = logger.bind(kind="order_confirmation", order_number=payload.order_number)
        log.info("email_dispatch_requested", to=payload.customer_email)
        try:
            html = render_order_confirmation(payload, self.settings)
        except Exception as e:
            log.error("email_render_failed", error=str(e))
            return DispatchResult(success=False, error=f"Failed to render email: {e}")
        return await self.send_email(
            to_email=payload.customer_email,
            to_name=payload.customer_name,
            subject=order_confirmation_subject(payload),
            html=html,
            kind="order_confirmation",
        )

    async def send_welcome_email(self, customer_name: str, customer_email: str) -> DispatchResult:
        return await self.send_email(
            to_email=customer_email,
            to_name=customer_name,
            subject=welcome_subject(self.settings),
            html=render_welcome(customer_name, self.settings),
            kind="welcome",
        )

    async def send_email(self, to_email: str, to_name: str, subject: str, html: str, kind: str) -> DispatchResult:
        log = logger.bind(kind=kind, to=to_email)
        if not self.configured:
            log.error("email_not_sent", reason="Email service not configured")
            return DispatchResult(success=False, error="Email service not configured")

        message = {
            "sender": self.sender,
            "to": [{"email": to_email, "name": to_name}],
            "subject": subject,
            "htmlContent": html,
        }
        if self.reply_to:
            message["replyTo"] = {"email": self.reply_to}

        for attempt in range(1, self.max_attempts + 1):
            log.info("email_attempt", attempt=attempt, max_attempts=self.max_attempts)
            try:
                body = await asyncio.wait_for(self._post(message), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                error = NotificationError(
                    f"Request timeout after {self.timeout_seconds:g} seconds", code="ETIMEDOUT", transient=True
                )
            except Exception as e:
                error = e
            else:
                ecomm_notification_attempts_total.labels(kind=kind, outcome="sent").inc()
                log.info("email_sent", attempt=attempt, message_id=body.get("messageId"))
                return DispatchResult(success=True, attempts=attempt, message_id=body.get("messageId"))

            transient = is_transient_error(error)
            code = error_code_of(error)
            if transient and attempt < self.max_attempts:
                delay = attempt * self.backoff_seconds
                ecomm_notification_attempts_total.labels(kind=kind, outcome="retry").inc()
                log.warning("email_attempt_failed_retrying", attempt=attempt, error=str(error), error_code=code, retry_in=delay)
                await self._sleep(delay)
                continue

            ecomm_notification_attempts_total.labels(kind=kind, outcome="failed").inc()
            log.error("email_send_failed", attempt=attempt, error=str(error), error_code=code, transient=transient)
            return DispatchResult(success=False, error=str(error) or "Failed to send email", error_code=code, attempts=attempt)

        # max_attempts < 1
        return DispatchResult(success=False, error="All retry attempts failed")

    async def _post(self, message: dict) -> dict:
        resp = await self._client.post(
            "/smtp/email",
            json=message,
            headers={"api-key": self.api_key, "accept": "application/json"},
        )
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            raise NotificationError(
                body.get("message") or f"Email provider returned HTTP {resp.status_code}",
                code=body.get("code") or str(resp.status_code),
                transient=False,
            )
        try:
            return resp.json()
        except ValueError:
            return {}

    async def aclose(self) -> None:
        await self._client.aclose()
