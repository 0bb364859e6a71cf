"""Payment State Machine — pure resolution of gateway callbacks against a payment's state.

Invariants:
    - initiated is the only entry state; success and failed are absorbing
    - A callback repeating the current terminal state is a no-op (DUPLICATE), not an error
    - A callback contradicting a terminal state is ignored (IGNORED_TERMINAL), never applied
    - resolve_callback is PURE: returns a decision, the shell applies it

Design Decisions:
    - Decision enum over booleans: the shell logs IGNORED_TERMINAL differently from DUPLICATE
"""

from enum import Enum

from examops.core.domain_types import GatewayCallbackStatus, PaymentStatus


class CallbackDecision(str, Enum):
    APPLY = "apply"
    DUPLICATE = "duplicate"
    IGNORED_TERMINAL = "ignored_terminal"


_TARGET_STATE = {
    GatewayCallbackStatus.SUCCEEDED: PaymentStatus.SUCCESS,
    GatewayCallbackStatus.FAILED: PaymentStatus.FAILED,
}


def target_status(callback_status: GatewayCallbackStatus) -> PaymentStatus:
    return _TARGET_STATE[callback_status]


def is_terminal(status: PaymentStatus) -> bool:
    return status in (PaymentStatus.SUCCESS, PaymentStatus.FAILED)


def resolve_callback(
    current: PaymentStatus, callback_status: GatewayCallbackStatus,
) -> CallbackDecision:
    target = target_status(callback_status)
    if current == PaymentStatus.INITIATED:
        return CallbackDecision.APPLY
    if current == target:
        return CallbackDecision.DUPLICATE
    return CallbackDecision.IGNORED_TERMINAL
