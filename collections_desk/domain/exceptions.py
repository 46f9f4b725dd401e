"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotFoundError(DomainException):
    """Case, customer or loan does not exist"""

    pass


class ValidationError(DomainException):
    """Malformed identifier, filter or pagination bound"""

    pass


class ConflictError(DomainException):
    """Request conflicts with the current state of a case"""

    pass


class DuplicateActiveCaseError(ConflictError):
    """An OPEN or IN_PROGRESS case already exists for the loan"""

    pass


class DuplicateCustomerError(ConflictError):
    """A customer with the same identity already exists"""

    pass


class TerminalCaseError(ConflictError):
    """Case is RESOLVED or CLOSED and accepts no further work"""

    pass


class VersionMismatchError(ConflictError):
    """Caller's expected version is stale"""

    def __init__(self, expected: int, current: int):
        super().__init__(f"Version mismatch. Expected {expected}, current version is {current}.")
        self.expected = expected
        self.current = current


class ConcurrentModificationError(ConflictError):
    """Conditional update lost the race against another writer"""

    pass


class RuleCatalogError(DomainException):
    """Assignment rule configuration is missing or malformed"""

    pass
