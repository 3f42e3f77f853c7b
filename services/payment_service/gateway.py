"""
Payment gateway adapter.

`PaymentGateway` is the port the order lifecycle depends on; `RazorpayGateway`
talks to the Razorpay Orders API over httpx. One adapter instance (and its
connection pool) is built at startup and injected into request handlers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from shared.config.settings import Settings
from shared.errors import ConfigurationError, GatewayError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    """A remote order/session opened on the gateway."""

    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None


class PaymentGateway(ABC):

    @abstractmethod
    async def open_transaction(
        self,
        amount_minor_units: int,
        currency: str,
        receipt_id: str,
        metadata: dict,
    ) -> GatewayOrder:
        """Open a remote payment order and return its reference."""
        ...

    async def aclose(self) -> None:
        return None


class RazorpayGateway(PaymentGateway):

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not key_id or not key_secret:
            logger.warning("razorpay_credentials_missing", detail="gateway payments will fail until configured")
        self._configured = bool(key_id and key_secret)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayGateway":
        return cls(settings.razorpay_key_id, settings.razorpay_key_secret, settings.razorpay_api_url)

    async def open_transaction(
        self,
        amount_minor_units: int,
        currency: str,
        receipt_id: str,
        metadata: dict,
    ) -> GatewayOrder:
        if not self._configured:
            raise ConfigurationError("Payment gateway credentials not configured")

        payload = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt_id,
            "notes": metadata,
        }
        try:
            resp = await self._client.post("/orders", json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._provider_error(e.response) from e
        except httpx.HTTPError as e:
            raise GatewayError("Failed to create gateway order", details=str(e)) from e

        body = resp.json()
        logger.info("gateway_order_created", gateway_order_id=body["id"], receipt=receipt_id)
        return GatewayOrder(
            id=body["id"],
            amount=body.get("amount", amount_minor_units),
            currency=body.get("currency", currency),
            receipt=body.get("receipt"),
            status=body.get("status"),
        )

    @staticmethod
    def _provider_error(response: httpx.Response) -> GatewayError:
        # Razorpay error shape: {"error": {"code": "BAD_REQUEST_ERROR", "description": "..."}}
        try:
            error = response.json().get("error") or {}
        except ValueError:
            error = {}
        return GatewayError(
            "Failed to create gateway order",
            details=error.get("description") or response.text,
            upstream_status=response.status_code,
            provider_code=error.get("code"),
            provider_description=error.get("description"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
