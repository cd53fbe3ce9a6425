"""
Payment gateway integration.

The booking engine talks to the gateway only through ``PaymentGateway``:
authorize an amount, capture an authorization, refund a captured payment.
``KaspiPaymentGateway`` is the production implementation; without an API
key (or in DEBUG) it emulates successful responses so local flows work.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal

import requests
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """The gateway refused the operation or could not be reached."""


class PaymentGateway(ABC):
    """Narrow interface of the external payment collaborator."""

    provider = ""

    @abstractmethod
    def authorize(self, amount: Decimal, currency: str, reference: str) -> str:
        """Reserve ``amount`` on the payer's instrument and return an intent reference."""

    @abstractmethod
    def capture(self, intent_ref: str, idempotency_key: str | None = None) -> bool:
        """Capture a previously authorized intent. False means the capture was refused.

        Repeating a call with the same ``idempotency_key`` must not capture twice.
        """

    @abstractmethod
    def refund(self, intent_ref: str, amount: Decimal, idempotency_key: str | None = None) -> bool:
        """Refund ``amount`` of a captured intent. False means the refund was refused.

        Repeating a call with the same ``idempotency_key`` must not refund twice.
        """


class KaspiPaymentGateway(PaymentGateway):
    """Kaspi.kz Payment Gateway"""

    provider = "kaspi"

    def __init__(self):
        self.api_key = getattr(settings, "KASPI_API_KEY", "")
        self.merchant_id = getattr(settings, "KASPI_MERCHANT_ID", "")
        self.base_url = getattr(settings, "KASPI_API_BASE_URL", "https://api.kaspi.kz/v2/")
        self.secret_key = getattr(settings, "KASPI_SECRET_KEY", "")
        self.timeout = getattr(settings, "PAYMENT_REQUEST_TIMEOUT", 30)

    @property
    def emulated(self) -> bool:
        return settings.DEBUG or not self.api_key

    def generate_signature(self, data: dict) -> str:
        """SHA256 over the alphabetically sorted payload followed by the secret."""
        sign_string = "&".join(f"{k}={v}" for k, v in sorted(data.items()))
        sign_string += f"&{self.secret_key}"
        return hashlib.sha256(sign_string.encode()).hexdigest()

    def _post(self, path: str, payload: dict, idempotency_key: str | None = None) -> dict:
        payload = dict(payload, merchant_id=self.merchant_id)
        payload["signature"] = self.generate_signature(payload)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error("Kaspi API request %s failed: %s", path, e)
            raise PaymentGatewayError(f"Kaspi connection error: {e}") from e

    def authorize(self, amount: Decimal, currency: str, reference: str) -> str:
        logger.info("Authorizing %s %s for %s via Kaspi", amount, currency, reference)

        if self.emulated:
            intent_ref = f"kaspi_{uuid.uuid4().hex[:16]}"
            logger.warning("Kaspi API emulation: authorization %s created", intent_ref)
            return intent_ref

        result = self._post(
            "payments/authorize",
            {
                "order_id": reference,
                "amount": int(amount * 100),  # Kaspi принимает суммы в тиынах
                "currency": currency,
            },
        )
        if not result.get("success"):
            error_msg = result.get("error", {}).get("message", "Unknown error")
            raise PaymentGatewayError(f"Kaspi error: {error_msg}")
        return result["payment_id"]

    def capture(self, intent_ref: str, idempotency_key: str | None = None) -> bool:
        logger.info("Capturing Kaspi payment %s", intent_ref)
        if self.emulated:
            return True
        result = self._post(
            f"payments/{intent_ref}/capture",
            {"payment_id": intent_ref},
            idempotency_key=idempotency_key,
        )
        return bool(result.get("success"))

    def refund(self, intent_ref: str, amount: Decimal, idempotency_key: str | None = None) -> bool:
        logger.info("Refunding %s on Kaspi payment %s", amount, intent_ref)
        if self.emulated:
            return True
        result = self._post(
            f"payments/{intent_ref}/refund",
            {"payment_id": intent_ref, "amount": int(amount * 100)},
            idempotency_key=idempotency_key,
        )
        return bool(result.get("success"))


def get_payment_gateway() -> PaymentGateway:
    """Instantiate the gateway configured in ``PAYMENT_GATEWAY_CLASS``."""
    path = getattr(settings, "PAYMENT_GATEWAY_CLASS", "apps.finances.gateways.KaspiPaymentGateway")
    return import_string(path)()
