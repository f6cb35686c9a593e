"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Request is malformed: non-positive amount, unknown enum, impossible schedule"""

    pass


class NotFoundError(DomainException):
    """Entity does not exist or belongs to another household"""

    pass


class LimitExceededError(DomainException):
    """Amount exceeds a credit limit or the outstanding loan principal"""

    pass


class InsufficientFundsError(DomainException):
    """Payment source account does not hold enough balance"""

    pass


class ConflictError(DomainException):
    """Concurrent write detected, or the write collides with existing state"""

    pass


class ScheduleDivergenceError(ValidationError):
    """Fixed payment can never amortise the balance (payment <= first month's interest)"""

    pass


class DuplicateStatementError(ConflictError):
    """A statement already exists for this billing cycle"""

    pass
