"""Payment State Machine — callback resolution against absorbing terminal states."""

import pytest

from examops.core.domain_types import GatewayCallbackStatus, PaymentStatus
from examops.core.payment_state import CallbackDecision, is_terminal, resolve_callback

SUCCEEDED = GatewayCallbackStatus.SUCCEEDED
FAILED = GatewayCallbackStatus.FAILED


@pytest.mark.parametrize("callback", [SUCCEEDED, FAILED])
def test_initiated_applies_any_callback(callback):
    assert resolve_callback(PaymentStatus.INITIATED, callback) == CallbackDecision.APPLY


def test_repeated_success_is_duplicate():
    assert resolve_callback(PaymentStatus.SUCCESS, SUCCEEDED) == CallbackDecision.DUPLICATE


def test_repeated_failure_is_duplicate():
    assert resolve_callback(PaymentStatus.FAILED, FAILED) == CallbackDecision.DUPLICATE


def test_contradicting_terminal_state_is_ignored():
    assert resolve_callback(PaymentStatus.SUCCESS, FAILED) == CallbackDecision.IGNORED_TERMINAL
    assert resolve_callback(PaymentStatus.FAILED, SUCCEEDED) == CallbackDecision.IGNORED_TERMINAL


def test_terminal_states():
    assert not is_terminal(PaymentStatus.INITIATED)
    assert is_terminal(PaymentStatus.SUCCESS)
    assert is_terminal(PaymentStatus.FAILED)
