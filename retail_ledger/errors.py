"""
Error Taxonomy and Result Type

Every fallible ledger operation returns a Result carrying either a success
value or a LedgerError. All failures are local and recoverable; none of them
leave partial mutation behind because every check runs before any mutation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Kinds of ledger failures"""
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_FUNDS = "insufficient_funds"        # Savings withdrawal
    OVERDRAFT_EXCEEDED = "overdraft_exceeded"        # Current withdrawal
    TRANSFER_INFEASIBLE = "transfer_infeasible"
    SAME_ACCOUNT_TRANSFER = "same_account_transfer"
    DUPLICATE_NATIONAL_ID = "duplicate_national_id"
    INVALID_NATIONAL_ID = "invalid_national_id"
    INVALID_DATE_OF_BIRTH = "invalid_date_of_birth"
    INVALID_CUSTOMER_DATA = "invalid_customer_data"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    ACCOUNT_NOT_FOUND = "account_not_found"
    NON_ZERO_BALANCE_REMOVAL = "non_zero_balance_removal"
    PERIOD_ALREADY_PROCESSED = "period_already_processed"
    INVALID_PERIOD = "invalid_period"
    LOCK_TIMEOUT = "lock_timeout"                    # Bounded lock wait ran out


@dataclass(frozen=True)
class LedgerError:
    """
    A failed ledger operation.

    `message` is meant for developers and logs; presenting the failure to an
    end user is the caller's job.
    """
    kind: ErrorKind
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    cause: Optional['LedgerError'] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "kind": self.kind.value,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }
        if self.cause:
            result["cause"] = self.cause.to_dict()
        return result


class LedgerException(Exception):
    """Raised by Result.unwrap() when the result is a failure"""

    def __init__(self, error: LedgerError):
        super().__init__(f"{error.kind.value}: {error.message}")
        self.error = error

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success value or LedgerError, never both"""
    value: Optional[T] = None
    error: Optional[LedgerError] = None

    def __post_init__(self):
        if self.error is not None and self.value is not None:
            raise ValueError("Result cannot carry both a value and an error")

    @classmethod
    def success(cls, value: Optional[T] = None) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        cause: Optional[LedgerError] = None,
        **context: Any
    ) -> 'Result[T]':
        return cls(error=LedgerError(kind=kind, message=message, context=context, cause=cause))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        """Error kind, or None for a success"""
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise LedgerException"""
        if self.error is not None:
            raise LedgerException(self.error)
        return self.value

    def __bool__(self) -> bool:
        return self.ok
