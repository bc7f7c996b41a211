"""Error taxonomy for order operations.

Services raise these internally; the result boundary in
``comanda.services.results`` turns them into tagged ``ServiceResult`` values so
expected conditions never escape a service call as exceptions.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """How the caller should react to a failure."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    COVERAGE = "coverage"
    TRANSIENT = "transient"
    UNEXPECTED = "unexpected"


class ErrorKind(str, Enum):
    """Specific failure reported in a ServiceResult."""

    MISSING_OPERATOR = "missing_operator"
    INVALID_PAYMENT_METHOD = "invalid_payment_method"
    INCOMPLETE_INVOICE_DATA = "incomplete_invoice_data"
    INVALID_TIP = "invalid_tip"
    INVALID_ORDER = "invalid_order"
    NOT_FOUND = "not_found"
    ILLEGAL_TRANSITION = "illegal_transition"
    ALREADY_SETTLED = "already_settled"
    CONCURRENT_UPDATE = "concurrent_update"
    CANCELLATION_WINDOW_EXPIRED = "cancellation_window_expired"
    NOT_DELETABLE = "not_deletable"
    TIP_ALREADY_REGISTERED = "tip_already_registered"
    OUT_OF_COVERAGE = "out_of_coverage"
    SERVICE_DISABLED = "service_disabled"
    CONFIGURATION_MISSING = "configuration_missing"
    UNAVAILABLE = "unavailable"
    UNEXPECTED = "unexpected"


class OrderError(Exception):
    """Base class for expected order-operation failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    category: ErrorCategory = ErrorCategory.UNEXPECTED

    def __init__(self, message: str, **details: object):
        super().__init__(message)
        self.message = message
        self.details = details


# Validation


class ValidationFailed(OrderError):
    category = ErrorCategory.VALIDATION


class MissingOperator(ValidationFailed):
    kind = ErrorKind.MISSING_OPERATOR


class InvalidPaymentMethod(ValidationFailed):
    kind = ErrorKind.INVALID_PAYMENT_METHOD


class IncompleteInvoiceData(ValidationFailed):
    kind = ErrorKind.INCOMPLETE_INVOICE_DATA


class InvalidTip(ValidationFailed):
    kind = ErrorKind.INVALID_TIP


class InvalidOrder(ValidationFailed):
    kind = ErrorKind.INVALID_ORDER


class OrderNotFound(OrderError):
    kind = ErrorKind.NOT_FOUND
    category = ErrorCategory.NOT_FOUND


# Conflict


class ConflictError(OrderError):
    category = ErrorCategory.CONFLICT


class IllegalTransition(ConflictError):
    kind = ErrorKind.ILLEGAL_TRANSITION


class AlreadySettled(ConflictError):
    kind = ErrorKind.ALREADY_SETTLED


class ConcurrentUpdate(ConflictError):
    kind = ErrorKind.CONCURRENT_UPDATE


class CancellationWindowExpired(ConflictError):
    kind = ErrorKind.CANCELLATION_WINDOW_EXPIRED


class NotDeletable(ConflictError):
    kind = ErrorKind.NOT_DELETABLE


class TipAlreadyRegistered(ConflictError):
    kind = ErrorKind.TIP_ALREADY_REGISTERED


# Coverage / configuration


class CoverageError(OrderError):
    category = ErrorCategory.COVERAGE


class OutOfCoverage(CoverageError):
    kind = ErrorKind.OUT_OF_COVERAGE


class ServiceDisabled(CoverageError):
    kind = ErrorKind.SERVICE_DISABLED


class ConfigurationMissing(CoverageError):
    kind = ErrorKind.CONFIGURATION_MISSING
