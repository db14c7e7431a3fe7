# backend/tutorslot/services/payment.py
"""
Payment collaborator.

The booking core only needs two calls: capture the price of a session when
the teacher accepts, and refund it when an accepted session is cancelled.
`PaymentGateway` is that contract; `StripePaymentGateway` implements it with
off-session PaymentIntents. Capture must be idempotent per session, so the
caller passes an `idempotency_key` in the metadata and it is forwarded to
Stripe unchanged.
"""

from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from pydantic import BaseModel
import stripe

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService

logger = logging.getLogger(__name__)


class PaymentResult(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    reason: Optional[str] = None


class PaymentGateway(Protocol):
    def capture(
        self,
        amount: Decimal,
        currency: str,
        payer_ref: str,
        metadata: Mapping[str, Any],
    ) -> PaymentResult:
        ...

    def refund(self, transaction_id: str) -> bool:
        ...


def to_minor_units(amount: Decimal) -> int:
    """Decimal major units (12.34) to integer cents (1234)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePaymentGateway(BaseService):
    """PaymentGateway backed by Stripe PaymentIntents and Refunds."""

    def __init__(self, api_key: Optional[str] = None) -> None:
        super().__init__()
        key = api_key if api_key is not None else settings.stripe_secret_key.get_secret_value()
        self.stripe_configured = bool(key)
        if self.stripe_configured:
            stripe.api_key = key
            stripe.max_network_retries = 1
            self.logger.info("Stripe payment gateway configured")
        else:
            self.logger.warning("Stripe secret key not configured - captures will fail")

    def _check_stripe_configured(self) -> None:
        if not self.stripe_configured:
            raise ServiceException(
                "Stripe is not configured. Please check TUTORSLOT_STRIPE_SECRET_KEY.",
                code="PAYMENT_NOT_CONFIGURED",
            )

    @BaseService.measure_operation("stripe_capture")
    def capture(
        self,
        amount: Decimal,
        currency: str,
        payer_ref: str,
        metadata: Mapping[str, Any],
    ) -> PaymentResult:
        """
        Charge the payer off-session and confirm immediately.

        Args:
            amount: Price in major units
            currency: ISO currency code
            payer_ref: Stripe customer id
            metadata: Must carry `idempotency_key`; may carry `payment_method`.
                Other entries are attached to the PaymentIntent as metadata.

        Returns:
            PaymentResult; Stripe errors and non-succeeded intents are failures
        """
        self._check_stripe_configured()
        extra: Dict[str, Any] = dict(metadata)
        idempotency_key = extra.pop("idempotency_key", None)
        payment_method = extra.pop("payment_method", None)

        params: Dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "customer": payer_ref,
            "confirm": True,
            "off_session": True,
            "metadata": {key: str(value) for key, value in extra.items()},
            "idempotency_key": idempotency_key,
        }
        if payment_method:
            params["payment_method"] = payment_method

        try:
            pi = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error capturing payment for {payer_ref}: {str(e)}")
            return PaymentResult(success=False, reason=str(e))

        status = getattr(pi, "status", None)
        if status != "succeeded":
            self.logger.warning(f"PaymentIntent {pi.id} ended in status {status}")
            return PaymentResult(success=False, transaction_id=pi.id, reason=f"status {status}")
        return PaymentResult(success=True, transaction_id=pi.id)

    @BaseService.measure_operation("stripe_refund")
    def refund(self, transaction_id: str) -> bool:
        """Refund a captured PaymentIntent in full. Returns False on Stripe errors."""
        self._check_stripe_configured()
        try:
            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                idempotency_key=f"refund:{transaction_id}",
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error refunding {transaction_id}: {str(e)}")
            return False
        return getattr(refund, "status", None) in ("succeeded", "pending")
