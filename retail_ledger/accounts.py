"""
Account Module

Accounts are a tagged variant: every account has a kind (savings or current)
plus one kind-specific parameter. The withdrawal feasibility rule and the
month-end rule for each kind live in a capability table, ACCOUNT_POLICIES,
instead of in subclasses.

Balances only ever change together with an appended transaction log entry,
under the account's lock.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import threading
import time

from .currency import Currency, AmountLike, ZERO, to_decimal
from .errors import ErrorKind, Result
from .logging_config import get_logger, log_action
from .transaction_log import EntryType, LogEntry, TransactionLog

logger = get_logger("retail_ledger.accounts")


class AccountKind(Enum):
    """Account variants"""
    SAVINGS = "savings"   # Interest-bearing, no overdraft
    CURRENT = "current"   # Overdraft-bearing, no interest


def coerce_amount(value: AmountLike, field_name: str = "amount") -> Result[Decimal]:
    """Turn caller input into a finite Decimal or an INVALID_AMOUNT failure"""
    try:
        return Result.success(to_decimal(value))
    except (TypeError, ValueError) as e:
        return Result.failure(ErrorKind.INVALID_AMOUNT, str(e), field=field_name, value=value)


def _require_positive(amount: AmountLike) -> Result[Decimal]:
    coerced = coerce_amount(amount)
    if not coerced.ok:
        return coerced
    if coerced.value <= ZERO:
        return Result.failure(
            ErrorKind.INVALID_AMOUNT, "Amount must be positive", amount=coerced.value
        )
    return coerced


# Capability rules. Each withdrawal rule answers "may `amount` leave this
# account right now?" without mutating anything; each month-end rule returns
# the interest to credit, or None when the kind has no month-end effect.

def _savings_withdrawal(account: 'Account', amount: Decimal) -> Result[None]:
    if account.balance < amount:
        return Result.failure(
            ErrorKind.INSUFFICIENT_FUNDS,
            f"Insufficient funds in account {account.id}",
            account_id=account.id, balance=account.balance, amount=amount
        )
    return Result.success()


def _current_withdrawal(account: 'Account', amount: Decimal) -> Result[None]:
    if account.balance + account.parameter < amount:
        return Result.failure(
            ErrorKind.OVERDRAFT_EXCEEDED,
            f"Overdraft limit exceeded for account {account.id}",
            account_id=account.id, balance=account.balance,
            overdraft_limit=account.parameter, amount=amount
        )
    return Result.success()


def _savings_month_end(account: 'Account') -> Optional[Decimal]:
    return account.balance * account.parameter / Decimal('100')


def _current_month_end(account: 'Account') -> Optional[Decimal]:
    return None


@dataclass(frozen=True)
class AccountPolicy:
    """Kind-specific behavior of an account"""
    kind: AccountKind
    parameter_name: str
    check_withdrawal: Callable[['Account', Decimal], Result[None]]
    month_end: Callable[['Account'], Optional[Decimal]]

    def floor(self, parameter: Decimal) -> Decimal:
        """Lowest balance the kind allows"""
        if self.kind == AccountKind.CURRENT:
            return -parameter
        return ZERO


ACCOUNT_POLICIES: Dict[AccountKind, AccountPolicy] = {
    AccountKind.SAVINGS: AccountPolicy(
        kind=AccountKind.SAVINGS,
        parameter_name="interest_rate",
        check_withdrawal=_savings_withdrawal,
        month_end=_savings_month_end,
    ),
    AccountKind.CURRENT: AccountPolicy(
        kind=AccountKind.CURRENT,
        parameter_name="overdraft_limit",
        check_withdrawal=_current_withdrawal,
        month_end=_current_month_end,
    ),
}


def validate_account_terms(
    kind: AccountKind,
    initial_balance: AmountLike,
    kind_param: AmountLike
) -> Result[Tuple[Decimal, Decimal]]:
    """
    Check the inputs for opening an account.

    Returns:
        (initial_balance, kind_param) as Decimals on success
    """
    if not isinstance(kind, AccountKind):
        return Result.failure(ErrorKind.INVALID_AMOUNT, f"Unknown account kind: {kind!r}", account_kind=kind)

    balance = coerce_amount(initial_balance, "initial_balance")
    if not balance.ok:
        return balance
    if balance.value < ZERO:
        return Result.failure(
            ErrorKind.INVALID_AMOUNT, "Initial balance cannot be negative",
            initial_balance=balance.value
        )

    policy = ACCOUNT_POLICIES[kind]
    param = coerce_amount(kind_param, policy.parameter_name)
    if not param.ok:
        return param
    if param.value < ZERO:
        return Result.failure(
            ErrorKind.INVALID_AMOUNT, f"{policy.parameter_name} cannot be negative",
            **{policy.parameter_name: param.value}
        )

    return Result.success((balance.value, param.value))


@contextmanager
def lock_accounts(accounts: Iterable['Account'], timeout: float, attempts: int) -> Iterator[bool]:
    """
    Lock every given account, lowest account ID first, with a bounded wait.

    Each attempt waits at most `timeout` seconds per lock. Yields False
    instead of blocking forever when the locks cannot all be taken within
    `attempts` tries; nothing is held in that case.
    """
    ordered = sorted(accounts, key=lambda account: account.id)
    held: List['Account'] = []

    for attempt in range(attempts):
        for account in ordered:
            if account.lock.acquire(timeout=timeout):
                held.append(account)
            else:
                break
        if len(held) == len(ordered):
            break
        for account in reversed(held):
            account.lock.release()
        held = []
        logger.debug(
            "Lock attempt %d/%d failed for accounts %s",
            attempt + 1, attempts, [account.id for account in ordered]
        )
        time.sleep(timeout / 10)

    try:
        yield len(held) == len(ordered)
    finally:
        for account in reversed(held):
            account.lock.release()


class Account:
    """
    A customer account: balance plus append-only transaction log.

    `parameter` is the interest rate in percent for savings accounts and the
    overdraft limit for current accounts.
    """

    def __init__(
        self,
        account_id: int,
        kind: AccountKind,
        opening_balance: Decimal,
        parameter: Decimal,
        currency: Currency = Currency.EGP,
        opened_at: Optional[datetime] = None
    ):
        if opening_balance < ZERO:
            raise ValueError("Opening balance cannot be negative")
        if parameter < ZERO:
            raise ValueError(f"{ACCOUNT_POLICIES[kind].parameter_name} cannot be negative")

        self._id = account_id
        self._kind = kind
        self._parameter = parameter
        self._currency = currency
        self._date_opened = opened_at or datetime.now(timezone.utc)
        self._balance = opening_balance
        self._log = TransactionLog(opening_balance, self._date_opened)
        self._lock = threading.RLock()
        self._closed = False

    @property
    def id(self) -> int:
        return self._id

    @property
    def kind(self) -> AccountKind:
        return self._kind

    @property
    def policy(self) -> AccountPolicy:
        return ACCOUNT_POLICIES[self._kind]

    @property
    def parameter(self) -> Decimal:
        return self._parameter

    @property
    def interest_rate(self) -> Optional[Decimal]:
        """Interest rate in percent, savings accounts only"""
        return self._parameter if self._kind == AccountKind.SAVINGS else None

    @property
    def overdraft_limit(self) -> Optional[Decimal]:
        """Overdraft limit, current accounts only"""
        return self._parameter if self._kind == AccountKind.CURRENT else None

    @property
    def currency(self) -> Currency:
        return self._currency

    @property
    def date_opened(self) -> datetime:
        return self._date_opened

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def opening_balance(self) -> Decimal:
        return self._log.opening.amount

    @property
    def transaction_log(self) -> TransactionLog:
        return self._log

    @property
    def lock(self) -> threading.RLock:
        """Per-account mutual exclusion for balance and log mutation"""
        return self._lock

    @property
    def closed(self) -> bool:
        """True once the owning customer has been removed from the ledger"""
        return self._closed

    def close(self) -> None:
        """
        Retire the account for good.

        Every later deposit, withdrawal, transfer or month-end run against it
        fails with ACCOUNT_NOT_FOUND.

        Raises:
            ValueError: if the balance is not exactly zero
        """
        with self._lock:
            if self._balance != ZERO:
                raise ValueError(f"Account {self._id} cannot be closed with balance {self._balance}")
            self._closed = True

    def closed_failure(self) -> Result:
        """ACCOUNT_NOT_FOUND failure for operations on a closed account"""
        return Result.failure(
            ErrorKind.ACCOUNT_NOT_FOUND, f"Account {self._id} is closed",
            account_id=self._id
        )

    @property
    def available_to_withdraw(self) -> Decimal:
        """Largest amount a withdrawal could take right now"""
        return self._balance - self.policy.floor(self._parameter)

    def can_withdraw(self, amount: AmountLike) -> Result[Decimal]:
        """
        Run the withdrawal checks without mutating anything.

        Returns:
            The amount as a Decimal when a withdrawal would succeed
        """
        checked = _require_positive(amount)
        if not checked.ok:
            return checked
        with self._lock:
            if self._closed:
                return self.closed_failure()
            feasible = self.policy.check_withdrawal(self, checked.value)
        if not feasible.ok:
            return Result(error=feasible.error)
        return checked

    def deposit(self, amount: AmountLike) -> Result[Decimal]:
        """
        Add money to the account.

        Returns:
            New balance on success; INVALID_AMOUNT if amount <= 0
        """
        checked = _require_positive(amount)
        if not checked.ok:
            self._log_rejection("deposit", checked)
            return checked

        with self._lock:
            if self._closed:
                closed = self.closed_failure()
                self._log_rejection("deposit", closed)
                return closed
            value = checked.value
            self._apply(EntryType.DEPOSIT, value,
                        f"Deposited: {value}, New Balance: {self._balance + value}")
            balance = self._balance

        log_action(
            logger, "info", f"Deposit to account {self._id}",
            action="deposit", resource=f"account:{self._id}",
            extra={"amount": str(value), "balance": str(balance)}
        )
        return Result.success(balance)

    def withdraw(self, amount: AmountLike) -> Result[Decimal]:
        """
        Take money out of the account, subject to the kind's feasibility rule.

        Returns:
            New balance on success; INVALID_AMOUNT, INSUFFICIENT_FUNDS or
            OVERDRAFT_EXCEEDED otherwise
        """
        with self._lock:
            checked = self.can_withdraw(amount)
            if not checked.ok:
                self._log_rejection("withdraw", checked)
                return checked

            value = checked.value
            self._apply(EntryType.WITHDRAWAL, -value,
                        f"Withdrew: {value}, New Balance: {self._balance - value}")
            balance = self._balance

        log_action(
            logger, "info", f"Withdrawal from account {self._id}",
            action="withdraw", resource=f"account:{self._id}",
            extra={"amount": str(value), "balance": str(balance)}
        )
        return Result.success(balance)

    def end_of_month_process(self) -> Result[Decimal]:
        """
        Apply the kind's month-end rule.

        Savings accounts are credited balance * interest_rate / 100 and get
        one interest entry; current accounts are left untouched. Calling this
        twice in one period credits interest twice, so scheduling belongs to
        the month-end batch.

        Returns:
            Interest credited (zero for current accounts); ACCOUNT_NOT_FOUND
            once the account is closed
        """
        with self._lock:
            if self._closed:
                closed = self.closed_failure()
                self._log_rejection("end_of_month_process", closed)
                return closed
            interest = self.policy.month_end(self)
            if interest is None:
                return Result.success(ZERO)

            self._apply(EntryType.INTEREST, interest,
                        f"Interest added: {interest}, New Balance: {self._balance + interest}")
            balance = self._balance

        log_action(
            logger, "info", f"Interest credited to account {self._id}",
            action="end_of_month_process", resource=f"account:{self._id}",
            extra={"interest": str(interest), "balance": str(balance)}
        )
        return Result.success(interest)

    def add_note(
        self,
        entry_type: EntryType,
        description: str,
        counterparty_account_id: Optional[int] = None
    ) -> LogEntry:
        """Append a zero-amount cross-reference entry"""
        if entry_type not in (EntryType.TRANSFER_IN, EntryType.TRANSFER_OUT):
            raise ValueError(f"{entry_type.value} entries must move the balance")
        with self._lock:
            return self._log.append(
                entry_type, ZERO, self._balance, description,
                counterparty_account_id=counterparty_account_id
            )

    def checkpoint(self) -> Tuple[Decimal, int]:
        """Balance and log length, for restore() within one unit of work"""
        with self._lock:
            return self._balance, len(self._log)

    def restore(self, checkpoint: Tuple[Decimal, int]) -> None:
        """Undo everything appended since checkpoint()"""
        balance, log_length = checkpoint
        with self._lock:
            self._log.truncate(log_length)
            self._balance = balance

    def verify_integrity(self) -> Dict[str, Any]:
        """Check the log's hash chain and that it still explains the balance"""
        with self._lock:
            result = self._log.verify_integrity()
            computed = self._log.computed_balance()
            result['computed_balance'] = computed
            result['balance'] = self._balance
            if computed != self._balance:
                result['valid'] = False
            if self._balance < self.policy.floor(self._parameter):
                result['valid'] = False
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot for reporting collaborators"""
        with self._lock:
            return {
                "id": self._id,
                "kind": self._kind.value,
                self.policy.parameter_name: str(self._parameter),
                "currency": self._currency.code,
                "balance": str(self._balance),
                "closed": self._closed,
                "date_opened": self._date_opened.isoformat(),
                "transaction_log": [entry.to_dict() for entry in self._log],
            }

    def _apply(self, entry_type: EntryType, delta: Decimal, description: str) -> LogEntry:
        # Caller holds the lock and has already run every check
        new_balance = self._balance + delta
        entry = self._log.append(entry_type, delta, new_balance, description)
        self._balance = new_balance
        return entry

    def _log_rejection(self, action: str, result: Result) -> None:
        log_action(
            logger, "warning", f"{action} rejected for account {self._id}: {result.error.message}",
            action=action, resource=f"account:{self._id}",
            extra={"error": result.error.kind.value}
        )

    def __repr__(self) -> str:
        return (f"Account(id={self._id}, kind={self._kind.value}, "
                f"balance={self._balance}, {self.policy.parameter_name}={self._parameter})")
