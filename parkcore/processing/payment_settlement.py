"""
Payment Settlement
Idempotent charge recording for completed sessions
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from parkcore.config.settings import EngineConfig, config as default_config
from parkcore.core.constants import ActionCode, PaymentMethod, PaymentStatus, SessionStatus
from parkcore.core.exceptions import (
    SessionNotFoundException, PaymentNotAllowedException, InvalidPaymentRequestException,
    DuplicatePaymentException, PaymentGatewayException
)
from parkcore.core.models import Payment, new_id, utc_now
from parkcore.monitoring.activity_log import AuditTrail
from parkcore.storage.repositories import SessionRepository, PaymentRepository

logger = logging.getLogger(__name__)


def parse_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod.parse(value)
    except ValueError:
        raise InvalidPaymentRequestException(
            f"Unsupported payment method: {value}",
            details={"accepted": [m.value for m in PaymentMethod]}
        )


def parse_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidPaymentRequestException(f"Amount is not a number: {value}")
    if not amount.is_finite():
        raise InvalidPaymentRequestException(f"Amount is not a number: {value}")
    return amount


@dataclass
class ChargeResult:
    """Outcome of a gateway charge"""

    success: bool
    transaction_reference: Optional[str] = None
    failure_reason: Optional[str] = None


class SimulatedGateway:
    """In-core stand-in for a payment gateway; every charge succeeds"""

    def charge(self, amount: Decimal, method: PaymentMethod) -> ChargeResult:
        reference = "TXN-" + uuid.uuid4().hex[:8].upper()
        logger.debug(f"Simulated charge {amount} via {method.value}: {reference}")
        return ChargeResult(success=True, transaction_reference=reference)


class PaymentSettlement:
    """Validates and records payments; at most one SUCCESS per session"""

    def __init__(self, sessions: SessionRepository, payments: PaymentRepository,
                 audit: Optional[AuditTrail] = None, gateway=None,
                 engine_config: Optional[EngineConfig] = None, clock=utc_now):
        self.sessions = sessions
        self.payments = payments
        self.audit = audit or AuditTrail()
        self.gateway = gateway or SimulatedGateway()
        self.config = engine_config or default_config
        self.clock = clock

    def process_payment(self, session_id: str, amount: Decimal,
                        method=PaymentMethod.CREDIT_CARD) -> Payment:
        """
        Charge a completed session

        Raises:
            SessionNotFoundException: unknown session
            InvalidPaymentRequestException: unknown method or non-numeric amount
            PaymentNotAllowedException: session not COMPLETED or amount <= 0
            DuplicatePaymentException: a SUCCESS (or in-flight) payment exists
            PaymentGatewayException: gateway refused the charge (FAILED payment recorded)
        """
        method = parse_payment_method(method)
        logger.info(f"💳 Processing payment for session {session_id} with method {method.value}")

        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundException(session_id)

        if session.status != SessionStatus.COMPLETED:
            raise PaymentNotAllowedException(session_id, "session must be completed before payment")

        amount = parse_amount(amount) if amount is not None else None
        if amount is None or amount <= 0:
            raise PaymentNotAllowedException(session_id, "amount must be greater than 0.00")
        amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        existing = self.payments.find_success_for_session(session_id)
        if existing is not None:
            raise DuplicatePaymentException(session_id, existing.transaction_reference)

        payment = Payment(
            id=new_id(),
            session_id=session_id,
            amount=amount,
            method=method,
            status=PaymentStatus.PENDING,
            currency=self.config.CURRENCY,
            created_at=self.clock(),
        )
        blocking = self.payments.claim(payment)
        if blocking is not None:
            # Lost the race against a concurrent settlement of the same session
            logger.warning(f"⚠️ Concurrent payment for session {session_id} blocked ({blocking.status.value})")
            raise DuplicatePaymentException(session_id, blocking.transaction_reference)

        result = self._charge(amount, method)

        if not result.success:
            failed = self.payments.finalize(payment.id, PaymentStatus.FAILED, failure_reason=result.failure_reason)
            self.audit.record(
                session.user_id, ActionCode.PAYMENT_FAILED,
                f"Payment failed. Amount: ${amount}, Method: {method.value}, Reason: {result.failure_reason}"
            )
            logger.error(f"❌ Payment failed for session {session_id}: {result.failure_reason}")
            raise PaymentGatewayException(session_id, result.failure_reason, payment_id=failed.id if failed else payment.id)

        payment = self.payments.finalize(
            payment.id, PaymentStatus.SUCCESS, transaction_reference=result.transaction_reference
        )

        self.audit.record(
            session.user_id, ActionCode.PAYMENT_PROCESSED,
            f"Payment processed successfully. Amount: ${payment.amount}, Method: {method.value}, "
            f"Transaction: {payment.transaction_reference}"
        )
        logger.info(f"✅ Payment processed: {payment.transaction_reference} for session {session_id}")
        return payment

    def _charge(self, amount: Decimal, method: PaymentMethod) -> ChargeResult:
        try:
            return self.gateway.charge(amount, method)
        except Exception as e:
            logger.exception(f"Gateway error while charging {amount} via {method.value}")
            return ChargeResult(success=False, failure_reason=str(e) or type(e).__name__)

    def get_payments(self, session_id: str):
        return self.payments.list_by_session(session_id)
