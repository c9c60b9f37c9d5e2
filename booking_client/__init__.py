from .payment_flow import (
    ConfirmationResult,
    FlowCancelled,
    FlowState,
    IntentHandle,
    InvalidTransition,
    PaymentConfirmer,
    PaymentFlow,
    PaymentFlowError,
)

__all__ = [
    "ConfirmationResult",
    "FlowCancelled",
    "FlowState",
    "IntentHandle",
    "InvalidTransition",
    "PaymentConfirmer",
    "PaymentFlow",
    "PaymentFlowError",
]
