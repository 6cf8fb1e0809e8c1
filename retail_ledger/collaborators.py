"""
External Collaborators

The ledger never prompts or parses. An interactive front end supplies
already-validated primitives through an InputProvider; the functions here
are the single-pass glue between such a provider and the registry. Any
retry loop lives in the front end, not here.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable

from .accounts import Account, AccountKind
from .errors import Result
from .ledger import Ledger


@runtime_checkable
class InputProvider(Protocol):
    """Source of validated primitive inputs, e.g. a console prompt loop"""

    def read_non_empty_text(self) -> str:
        ...

    def read_national_id(self) -> str:
        """Exactly 14 ASCII digits"""
        ...

    def read_past_date(self) -> datetime:
        """Strictly earlier than now"""
        ...

    def read_non_negative_amount(self) -> Decimal:
        ...


def enroll_customer(ledger: Ledger, provider: InputProvider) -> Result[int]:
    """Read name, national ID and date of birth (in that order) and register them"""
    full_name = provider.read_non_empty_text()
    national_id = provider.read_national_id()
    date_of_birth = provider.read_past_date()
    return ledger.add_customer(full_name, national_id, date_of_birth)


def open_account_from(
    ledger: Ledger,
    provider: InputProvider,
    national_id: str,
    kind: AccountKind
) -> Result[Account]:
    """Read the initial balance, then the kind parameter, and open the account"""
    initial_balance = provider.read_non_negative_amount()
    kind_param = provider.read_non_negative_amount()
    return ledger.open_account(national_id, kind, initial_balance, kind_param)
