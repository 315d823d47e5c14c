import time
from decimal import Decimal
from unittest.mock import Mock

import pytest

from parkcore.core.constants import PaymentStatus, PaymentMethod, ActionCode
from parkcore.core.exceptions import (
    SessionNotFoundException, PaymentNotAllowedException, InvalidPaymentRequestException,
    DuplicatePaymentException, PaymentGatewayException
)
from parkcore.processing.payment_settlement import ChargeResult
from tests.conftest import build_engine, run_concurrently


@pytest.fixture
def flaky_gateway():
    gateway = Mock()
    gateway.charge.return_value = ChargeResult(success=False, failure_reason="insufficient funds")
    return gateway


@pytest.fixture
def unpaid_session(engine_config, clock, flaky_gateway):
    """Engine plus a COMPLETED session whose checkout payment failed"""
    engine = build_engine(engine_config, clock, gateway=flaky_gateway)
    session = engine.check_in("alice", "A1")
    clock.advance(minutes=60)
    with pytest.raises(PaymentGatewayException):
        engine.check_out(session.id)
    return engine, session.id


def test_payment_for_unknown_session(engine):
    with pytest.raises(SessionNotFoundException):
        engine.process_payment("missing", Decimal("5.00"))


def test_payment_for_active_session_not_allowed(engine):
    session = engine.check_in("alice", "A1")

    with pytest.raises(PaymentNotAllowedException) as exc_info:
        engine.process_payment(session.id, Decimal("5.00"))

    assert exc_info.value.status_code == 409
    assert engine.settlement.get_payments(session.id) == []


@pytest.mark.parametrize("amount", [Decimal("0.00"), Decimal("-1.00")])
def test_non_positive_amount_not_allowed(unpaid_session, amount):
    engine, session_id = unpaid_session

    with pytest.raises(PaymentNotAllowedException):
        engine.process_payment(session_id, amount)


@pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity"])
def test_non_numeric_amount_is_bad_request(unpaid_session, amount):
    engine, session_id = unpaid_session

    with pytest.raises(InvalidPaymentRequestException) as exc_info:
        engine.process_payment(session_id, amount)

    assert exc_info.value.status_code == 400


def test_unknown_method_is_bad_request(unpaid_session):
    engine, session_id = unpaid_session
    attempts = len(engine.settlement.get_payments(session_id))

    with pytest.raises(InvalidPaymentRequestException) as exc_info:
        engine.process_payment(session_id, Decimal("10.00"), "BITCOIN")

    assert exc_info.value.status_code == 400
    assert "CASH" in exc_info.value.details["accepted"]
    assert len(engine.settlement.get_payments(session_id)) == attempts


def test_second_payment_is_duplicate(engine, clock):
    session = engine.check_in("alice", "A1")
    clock.advance(minutes=30)
    result = engine.check_out(session.id)

    with pytest.raises(DuplicatePaymentException) as exc_info:
        engine.process_payment(session.id, Decimal("5.00"))

    assert exc_info.value.details["transaction_reference"] == result.payment.transaction_reference
    assert engine.store.payments.sum_by_status(PaymentStatus.SUCCESS) == Decimal("5.00")


def test_failed_payment_recorded_and_audited(unpaid_session):
    engine, session_id = unpaid_session

    payments = engine.settlement.get_payments(session_id)
    assert len(payments) == 1
    assert payments[0].status == PaymentStatus.FAILED
    assert payments[0].amount == Decimal("10.00")
    assert engine.activity_log.get_user_logs("alice")[0].action == ActionCode.PAYMENT_FAILED.value


def test_gateway_exception_becomes_failed_payment(engine_config, clock):
    gateway = Mock()
    gateway.charge.side_effect = TimeoutError("gateway timeout")
    engine = build_engine(engine_config, clock, gateway=gateway)
    session = engine.check_in("bob", "B1")

    with pytest.raises(PaymentGatewayException) as exc_info:
        engine.check_out(session.id)

    assert exc_info.value.details["reason"] == "gateway timeout"
    assert engine.settlement.get_payments(session.id)[0].status == PaymentStatus.FAILED


def test_retry_after_failure_succeeds(unpaid_session, flaky_gateway):
    engine, session_id = unpaid_session
    flaky_gateway.charge.return_value = ChargeResult(success=True, transaction_reference="TXN-RETRY001")

    payment = engine.process_payment(session_id, Decimal("10"), PaymentMethod.DEBIT_CARD)

    assert payment.status == PaymentStatus.SUCCESS
    assert payment.amount == Decimal("10.00")
    assert payment.method == PaymentMethod.DEBIT_CARD
    assert payment.transaction_reference == "TXN-RETRY001"
    assert engine.activity_log.get_user_logs("alice")[0].action == ActionCode.PAYMENT_PROCESSED.value


def test_concurrent_payments_charge_once(unpaid_session, flaky_gateway):
    engine, session_id = unpaid_session

    def slow_charge(amount, method):
        time.sleep(0.05)
        return ChargeResult(success=True, transaction_reference="TXN-ONLY0001")

    flaky_gateway.charge.reset_mock(return_value=True)
    flaky_gateway.charge.side_effect = slow_charge

    results = run_concurrently(engine.process_payment, [(session_id, Decimal("10.00"))] * 6)

    winners = [r for r, e in results if e is None]
    assert len(winners) == 1
    assert all(isinstance(e, DuplicatePaymentException) for r, e in results if e is not None)
    assert flaky_gateway.charge.call_count == 1
    statuses = [p.status for p in engine.settlement.get_payments(session_id)]
    assert statuses.count(PaymentStatus.SUCCESS) == 1
