"""
Month-End Processing Module

Runs every account's month-end rule once per (year, month) period. The
Account itself does not guard against double application, so the batch
remembers which accounts it has processed for each period. Accounts skipped
because their lock could not be taken are picked up by the next run of the
same period; a run with nothing left to do is refused.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple
import threading

from .accounts import AccountKind, lock_accounts
from .config import LedgerConfig, get_config
from .currency import ZERO
from .errors import ErrorKind, Result
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .ledger import Ledger

logger = get_logger("retail_ledger.month_end")

Period = Tuple[int, int]


@dataclass
class MonthEndSummary:
    """Result of one month-end batch run"""
    year: int
    month: int
    accounts_processed: int = 0
    savings_credited: int = 0
    total_interest: Decimal = ZERO
    interest_by_account: Dict[int, Decimal] = field(default_factory=dict)
    failures: Dict[int, str] = field(default_factory=dict)
    completed_at: Optional[datetime] = None

    @property
    def period(self) -> Period:
        return self.year, self.month

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": f"{self.year:04d}-{self.month:02d}",
            "accounts_processed": self.accounts_processed,
            "savings_credited": self.savings_credited,
            "total_interest": str(self.total_interest),
            "failures": dict(self.failures),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class MonthEndProcessor:
    """
    Applies end_of_month_process() across a ledger, once per account per period
    """

    def __init__(
        self,
        lock_timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        config: Optional[LedgerConfig] = None
    ):
        config = config or get_config()
        self.lock_timeout = lock_timeout if lock_timeout is not None else config.lock_timeout_seconds
        self.retry_attempts = retry_attempts if retry_attempts is not None else config.lock_retry_attempts
        self._processed: Dict[Period, Set[int]] = {}
        self._guard = threading.Lock()

    def has_processed(self, year: int, month: int) -> bool:
        """True once a batch for the period has run"""
        with self._guard:
            return (year, month) in self._processed

    def processed_accounts(self, year: int, month: int) -> Set[int]:
        """IDs of accounts whose month-end rule has run for the period"""
        with self._guard:
            return set(self._processed.get((year, month), ()))

    @property
    def processed_periods(self) -> List[Period]:
        with self._guard:
            return sorted(self._processed)

    def run(self, ledger: 'Ledger', year: Optional[int] = None, month: Optional[int] = None) -> Result[MonthEndSummary]:
        """
        Run month-end processing for every account in the ledger

        Args:
            ledger: Ledger whose accounts are processed
            year: Period year (defaults to the current UTC year)
            month: Period month 1-12 (defaults to the current UTC month)

        Returns:
            MonthEndSummary covering the accounts not yet processed for the
            period. INVALID_PERIOD for a month outside 1-12, and
            PERIOD_ALREADY_PROCESSED when a previous run already handled
            every account. Accounts whose lock could not be taken in time are
            listed in `failures` and stay pending for the next run.
        """
        now = datetime.now(timezone.utc)
        year = now.year if year is None else year
        month = now.month if month is None else month
        if not 1 <= month <= 12:
            return self._reject(ledger, Result.failure(
                ErrorKind.INVALID_PERIOD,
                f"Month must be between 1 and 12, got {month}",
                year=year, month=month
            ))

        period = (year, month)
        accounts = list(ledger.iter_accounts())

        with self._guard:
            seen = period in self._processed
            done = self._processed.setdefault(period, set())
            pending = [account for account in accounts if account.id not in done]
            if seen and not pending:
                return self._reject(ledger, Result.failure(
                    ErrorKind.PERIOD_ALREADY_PROCESSED,
                    f"Month-end for {year:04d}-{month:02d} has already run",
                    year=year, month=month
                ))
            # Claimed before processing so a concurrent run of the same period skips them
            done.update(account.id for account in pending)

        summary = MonthEndSummary(year=year, month=month)
        for account in pending:
            with lock_accounts([account], self.lock_timeout, self.retry_attempts) as acquired:
                if not acquired:
                    self._release(period, account.id)
                    summary.failures[account.id] = "lock_timeout"
                    continue
                result = account.end_of_month_process()

            if not result.ok:
                summary.failures[account.id] = result.kind.value
                continue

            summary.accounts_processed += 1
            if account.kind == AccountKind.SAVINGS:
                summary.savings_credited += 1
                summary.total_interest += result.value
                summary.interest_by_account[account.id] = result.value

        summary.completed_at = datetime.now(timezone.utc)
        log_action(
            logger, "warning" if summary.failures else "info",
            f"Month-end {year:04d}-{month:02d} completed",
            action="month_end", resource=f"ledger:{ledger.branch_code}",
            extra=summary.to_dict()
        )
        return Result.success(summary)

    def _release(self, period: Period, account_id: int) -> None:
        # Leaves the account pending so the next run of the period retries it
        with self._guard:
            self._processed[period].discard(account_id)

    def _reject(self, ledger: 'Ledger', result: Result) -> Result:
        log_action(
            logger, "warning", f"Month-end rejected: {result.error.message}",
            action="month_end", resource=f"ledger:{ledger.branch_code}",
            extra={"error": result.error.kind.value}
        )
        return result
