"""
Custom Exceptions for the parking engine
NotFound / Conflict / BadRequest taxonomy plus collaborator failures
"""


class ParkingEngineException(Exception):
    """Base exception for the parking engine"""

    status_code = 500

    def __init__(self, message: str, error_code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "UNKNOWN_ERROR"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.error_code}] {self.message} - Details: {self.details}"
        return f"[{self.error_code}] {self.message}"


# NotFound family
class NotFoundException(ParkingEngineException):
    """Referenced entity does not exist"""
    status_code = 404


class UserNotFoundException(NotFoundException):

    def __init__(self, user_id: str):
        super().__init__(
            message="User not found",
            error_code="USER_NOT_FOUND",
            details={"user_id": user_id}
        )


class SpotNotFoundException(NotFoundException):

    def __init__(self, spot_id: str):
        super().__init__(
            message="Spot not found",
            error_code="SPOT_NOT_FOUND",
            details={"spot_id": spot_id}
        )


class SessionNotFoundException(NotFoundException):

    def __init__(self, session_id: str):
        super().__init__(
            message="Session not found",
            error_code="SESSION_NOT_FOUND",
            details={"session_id": session_id}
        )


class ReservationNotFoundException(NotFoundException):

    def __init__(self, reservation_id: str):
        super().__init__(
            message="Reservation not found",
            error_code="RESERVATION_NOT_FOUND",
            details={"reservation_id": reservation_id}
        )


# Conflict family
class ConflictException(ParkingEngineException):
    """Operation would violate a state invariant"""
    status_code = 409


class StaleSpotVersionException(ConflictException):
    """Compare-and-swap on a spot lost to a concurrent writer"""

    def __init__(self, spot_id: str, expected_status: str, actual_status: str = None,
                 expected_version: int = None, actual_version: int = None):
        message = f"Spot '{spot_id}' changed concurrently"
        if actual_status:
            message += f" (expected {expected_status}, found {actual_status})"

        super().__init__(
            message=message,
            error_code="STALE_SPOT_VERSION",
            details={
                "spot_id": spot_id,
                "expected_status": expected_status,
                "actual_status": actual_status,
                "expected_version": expected_version,
                "actual_version": actual_version,
            }
        )


class SpotUnavailableException(ConflictException):

    def __init__(self, spot_id: str, status: str, reason: str = None):
        message = "Spot not available"
        if reason:
            message += f": {reason}"

        super().__init__(
            message=message,
            error_code="SPOT_UNAVAILABLE",
            details={"spot_id": spot_id, "status": status, "reason": reason}
        )


class ActiveSessionExistsException(ConflictException):

    def __init__(self, user_id: str, session_id: str = None):
        super().__init__(
            message="You already have an active parking session. Please check out first.",
            error_code="ACTIVE_SESSION_EXISTS",
            details={"user_id": user_id, "session_id": session_id}
        )


class SessionAlreadyCompletedException(ConflictException):

    def __init__(self, session_id: str):
        super().__init__(
            message="Session already checked out",
            error_code="SESSION_ALREADY_COMPLETED",
            details={"session_id": session_id}
        )


class DuplicatePaymentException(ConflictException):

    def __init__(self, session_id: str, transaction_reference: str = None):
        super().__init__(
            message="Session already paid",
            error_code="DUPLICATE_PAYMENT",
            details={"session_id": session_id, "transaction_reference": transaction_reference}
        )


class PaymentNotAllowedException(ConflictException):

    def __init__(self, session_id: str, reason: str):
        super().__init__(
            message=f"Payment not allowed: {reason}",
            error_code="PAYMENT_NOT_ALLOWED",
            details={"session_id": session_id, "reason": reason}
        )


class ReservationStateException(ConflictException):

    def __init__(self, reservation_id: str, status: str, reason: str):
        super().__init__(
            message=f"Reservation cannot be changed: {reason}",
            error_code="RESERVATION_STATE_ERROR",
            details={"reservation_id": reservation_id, "status": status}
        )


# BadRequest family
class BadRequestException(ParkingEngineException):
    """Invalid caller input"""
    status_code = 400


class InvalidReservationException(BadRequestException):

    def __init__(self, reason: str, details: dict = None):
        super().__init__(
            message=reason,
            error_code="INVALID_RESERVATION",
            details=details
        )


class InactiveUserException(BadRequestException):

    def __init__(self, user_id: str):
        super().__init__(
            message="User account is inactive",
            error_code="INACTIVE_USER",
            details={"user_id": user_id}
        )


class InvalidPaymentRequestException(BadRequestException):

    def __init__(self, reason: str, details: dict = None):
        super().__init__(
            message=reason,
            error_code="INVALID_PAYMENT_REQUEST",
            details=details
        )


# Collaborator failures
class PaymentGatewayException(ParkingEngineException):
    """Gateway refused the charge; the session stays COMPLETED and the spot stays free"""
    status_code = 502

    def __init__(self, session_id: str, reason: str = None, payment_id: str = None):
        message = f"Payment failed for session '{session_id}'"
        if reason:
            message += f": {reason}"

        super().__init__(
            message=message,
            error_code="PAYMENT_GATEWAY_ERROR",
            details={"session_id": session_id, "reason": reason, "payment_id": payment_id}
        )
        self.session_id = session_id
        self.payment_id = payment_id


class ConfigurationException(ParkingEngineException):

    def __init__(self, config_key: str, value: str = None, expected: str = None):
        message = f"Invalid configuration for '{config_key}'"
        if value:
            message += f" (value: {value})"
        if expected:
            message += f" (expected: {expected})"

        super().__init__(
            message=message,
            error_code="INVALID_CONFIG",
            details={"config_key": config_key, "value": value, "expected": expected}
        )


class FileReadException(ParkingEngineException):

    def __init__(self, file_path: str, reason: str = None):
        message = f"Failed to read file '{file_path}'"
        if reason:
            message += f": {reason}"

        super().__init__(
            message=message,
            error_code="FILE_READ_ERROR",
            details={"file_path": file_path, "reason": reason}
        )
