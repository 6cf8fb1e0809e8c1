"""
Customer Module

Customer profiles and the domain checks applied to them at registration:
a non-blank full name, a national ID of exactly 14 ASCII digits and a date
of birth in the past. A customer exclusively owns its accounts.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
import re

from .accounts import Account
from .currency import ZERO
from .errors import ErrorKind, Result

DateLike = Union[date, datetime]

NATIONAL_ID_LENGTH = 14

_NATIONAL_ID_PATTERN = re.compile(rf"[0-9]{{{NATIONAL_ID_LENGTH}}}")


def validate_full_name(full_name: str) -> Result[str]:
    """Names must contain something other than whitespace"""
    if not isinstance(full_name, str) or not full_name.strip():
        return Result.failure(ErrorKind.INVALID_CUSTOMER_DATA, "Full name cannot be empty")
    return Result.success(full_name.strip())


def validate_national_id(national_id: str) -> Result[str]:
    """National IDs are exactly 14 ASCII digits"""
    if not isinstance(national_id, str) or not _NATIONAL_ID_PATTERN.fullmatch(national_id):
        return Result.failure(
            ErrorKind.INVALID_NATIONAL_ID,
            f"National ID must be exactly {NATIONAL_ID_LENGTH} digits",
            national_id=national_id
        )
    return Result.success(national_id)


def validate_date_of_birth(date_of_birth: DateLike, now: Optional[datetime] = None) -> Result[DateLike]:
    """
    Dates of birth must be strictly earlier than now.

    Plain dates are compared against today's UTC date; naive datetimes are
    taken to be UTC.
    """
    now = now or datetime.now(timezone.utc)

    if isinstance(date_of_birth, datetime):
        moment = date_of_birth
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        in_past = moment < now
    elif isinstance(date_of_birth, date):
        in_past = date_of_birth < now.date()
    else:
        return Result.failure(
            ErrorKind.INVALID_DATE_OF_BIRTH, "Date of birth must be a date",
            date_of_birth=date_of_birth
        )

    if not in_past:
        return Result.failure(
            ErrorKind.INVALID_DATE_OF_BIRTH, "Date of birth must be in the past",
            date_of_birth=date_of_birth
        )
    return Result.success(date_of_birth)


@dataclass
class Customer:
    """
    Customer profile owning an ordered list of accounts
    """
    id: int
    full_name: str
    national_id: str
    date_of_birth: DateLike
    accounts: List[Account] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def total_balance(self) -> Decimal:
        """Sum of all owned account balances"""
        return sum((account.balance for account in self.accounts), ZERO)

    def find_account(self, account_id: int) -> Optional[Account]:
        """Owned account with this ID, or None"""
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    @property
    def can_be_removed(self) -> bool:
        """True when every owned account balance is exactly zero"""
        return all(account.balance == ZERO for account in self.accounts)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot for reporting collaborators"""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "national_id": self.national_id,
            "date_of_birth": self.date_of_birth.isoformat(),
            "total_balance": str(self.total_balance()),
            "accounts": [account.to_dict() for account in self.accounts],
        }
