"""Client-side payment flow for one booking.

``Idle -> IntentRequested -> IntentReady -> Confirming -> Settled | Failed``

The flow asks the payments service for an intent, hands the processor handle
to a confirmer (the processor's own client SDK, possibly with 3-D Secure
interaction), then makes a best-effort mark-paid call with the capability
token. The webhook remains the source of truth, so a failed mark-paid call
does not fail the flow. Every network wait is bounded by a timeout, and a
failed flow can simply be started again because intent creation is
idempotent per booking.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import httpx

from common.payments import from_minor_units

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    IDLE = "idle"
    INTENT_REQUESTED = "intent_requested"
    INTENT_READY = "intent_ready"
    CONFIRMING = "confirming"
    SETTLED = "settled"
    FAILED = "failed"


_TRANSITIONS: Dict[FlowState, frozenset] = {
    FlowState.IDLE: frozenset({FlowState.INTENT_REQUESTED}),
    FlowState.INTENT_REQUESTED: frozenset({FlowState.INTENT_READY, FlowState.FAILED, FlowState.IDLE}),
    FlowState.INTENT_READY: frozenset({FlowState.CONFIRMING, FlowState.FAILED, FlowState.IDLE}),
    FlowState.CONFIRMING: frozenset({FlowState.SETTLED, FlowState.FAILED}),
    FlowState.SETTLED: frozenset(),
    FlowState.FAILED: frozenset({FlowState.INTENT_REQUESTED}),
}


class PaymentFlowError(Exception):
    pass


class InvalidTransition(PaymentFlowError):
    pass


class FlowCancelled(PaymentFlowError):
    pass


@dataclass(frozen=True)
class IntentHandle:
    intent_id: str
    processor_handle: str
    capability_token: str


@dataclass(frozen=True)
class ConfirmationResult:
    succeeded: bool
    intent_id: Optional[str] = None
    amount_received: Optional[int] = None
    currency: str = "usd"
    error: Optional[str] = None


PaymentConfirmer = Callable[[str], Awaitable[ConfirmationResult]]


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text


class PaymentFlow:
    def __init__(
        self,
        http: httpx.AsyncClient,
        confirmer: PaymentConfirmer,
        *,
        request_timeout: float = 10.0,
        confirm_timeout: float = 300.0,
    ) -> None:
        self.http = http
        self.confirmer = confirmer
        self.request_timeout = request_timeout
        self.confirm_timeout = confirm_timeout
        self.state = FlowState.IDLE
        self.booking_id: Optional[str] = None
        self.intent: Optional[IntentHandle] = None
        self.confirmation: Optional[ConfirmationResult] = None
        self.error: Optional[str] = None
        self._attempt = 0

    def _transition(self, target: FlowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot move from {self.state.value} to {target.value}")
        logger.debug("Payment flow for %s: %s -> %s", self.booking_id, self.state.value, target.value)
        self.state = target

    def _fail(self, message: str) -> PaymentFlowError:
        self.error = message
        self._transition(FlowState.FAILED)
        logger.warning("Payment flow for booking %s failed: %s", self.booking_id, message)
        return PaymentFlowError(message)

    def _check_not_cancelled(self, attempt: int) -> None:
        if attempt != self._attempt or self.state != FlowState.INTENT_REQUESTED:
            raise FlowCancelled("Payment flow was cancelled while the intent was requested")

    async def request_intent(
        self,
        booking_id: str,
        amount: int,
        currency: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> IntentHandle:
        self._transition(FlowState.INTENT_REQUESTED)
        self._attempt += 1
        attempt = self._attempt
        self.booking_id = booking_id
        self.error = None
        self.intent = None
        self.confirmation = None

        body = {"bookingId": booking_id, "amount": amount}
        if currency:
            body["currency"] = currency
        if customer_email:
            body["customerEmail"] = customer_email

        try:
            response = await self.http.post("/payments/intent", json=body, timeout=self.request_timeout)
        except httpx.TimeoutException as exc:
            self._check_not_cancelled(attempt)
            raise self._fail("Timed out creating payment intent") from exc
        except httpx.HTTPError as exc:
            self._check_not_cancelled(attempt)
            raise self._fail(f"Could not reach payments service: {exc}") from exc

        self._check_not_cancelled(attempt)
        if response.status_code >= 400:
            raise self._fail(f"Payment setup failed ({response.status_code}): {_error_detail(response)}")

        try:
            data = response.json()
        except ValueError as exc:
            raise self._fail("Payments service returned an unreadable intent") from exc
        if not isinstance(data, dict) or not data.get("processorHandle") or not data.get("capabilityToken"):
            raise self._fail("Payments service returned an incomplete intent")

        self.intent = IntentHandle(
            intent_id=data.get("intentId", ""),
            processor_handle=data["processorHandle"],
            capability_token=data["capabilityToken"],
        )
        self._transition(FlowState.INTENT_READY)
        return self.intent

    async def confirm(self) -> ConfirmationResult:
        self._transition(FlowState.CONFIRMING)
        try:
            result = await asyncio.wait_for(self.confirmer(self.intent.processor_handle), timeout=self.confirm_timeout)
        except asyncio.TimeoutError as exc:
            raise self._fail("Timed out confirming payment") from exc
        except Exception as exc:
            raise self._fail(f"Payment confirmation error: {exc}") from exc

        self.confirmation = result
        if not result.succeeded:
            raise self._fail(result.error or "Payment was declined")

        await self._notify_paid(result)
        self._transition(FlowState.SETTLED)
        return result

    async def _notify_paid(self, result: ConfirmationResult) -> bool:
        """Best-effort optimistic mark-paid. Never raises."""

        body = {
            "bookingId": self.booking_id,
            "capabilityToken": self.intent.capability_token,
            "paymentMethod": "credit_card",
        }
        if result.amount_received is not None:
            body["paidAmount"] = str(from_minor_units(result.amount_received, result.currency))
        try:
            response = await self.http.post("/payments/mark-paid", json=body, timeout=self.request_timeout)
        except httpx.HTTPError as exc:
            logger.warning("mark-paid call failed (best-effort) for booking %s: %s", self.booking_id, exc)
            return False
        if response.status_code >= 400:
            logger.warning(
                "mark-paid call returned %s (best-effort) for booking %s: %s",
                response.status_code,
                self.booking_id,
                _error_detail(response),
            )
            return False
        logger.info("mark-paid succeeded (best-effort) for booking %s", self.booking_id)
        return True

    def cancel(self) -> None:
        """Abandon the flow before confirmation. Nothing authoritative has changed yet."""

        if self.state not in (FlowState.INTENT_REQUESTED, FlowState.INTENT_READY):
            raise InvalidTransition(f"Cannot cancel a flow in state {self.state.value}")
        self._transition(FlowState.IDLE)
        self.intent = None

    async def run(
        self,
        booking_id: str,
        amount: int,
        currency: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> FlowState:
        """Drive the whole flow, returning ``SETTLED`` or ``FAILED``."""

        try:
            await self.request_intent(booking_id, amount, currency, customer_email)
            await self.confirm()
        except FlowCancelled:
            logger.info("Payment flow for booking %s cancelled", booking_id)
        except InvalidTransition:
            raise
        except PaymentFlowError:
            pass
        return self.state
