"""
Test suite for month-end processing

Tests the batch over a ledger, the once-per-account-per-period guard and
lock timeouts.
"""

import threading
import time
from datetime import date
from decimal import Decimal

import pytest

from retail_ledger.accounts import Account, AccountKind
from retail_ledger.errors import ErrorKind
from retail_ledger.ledger import Ledger
from retail_ledger.month_end import MonthEndProcessor
from retail_ledger.transaction_log import EntryType

NID_A = "29001011234567"
NID_B = "28505051234561"


class TestMonthEndProcessor:
    """Test MonthEndProcessor functionality"""

    def setup_method(self):
        """Set up test fixtures"""
        self.ledger = Ledger("Test Bank", "T-001")
        self.ledger.add_customer("Ahmed Hassan", NID_A, date(1990, 1, 1))
        self.ledger.add_customer("Mona Adel", NID_B, date(1985, 5, 5))
        self.savings = self.ledger.open_account(NID_A, AccountKind.SAVINGS, Decimal('800'), Decimal('5')).value
        self.current = self.ledger.open_account(NID_B, AccountKind.CURRENT, Decimal('100'), Decimal('50')).value
        self.processor = MonthEndProcessor(lock_timeout=0.05, retry_attempts=2)

    def test_run_credits_savings_only(self):
        """Test savings get interest and current accounts are untouched"""
        result = self.processor.run(self.ledger, 2024, 1)

        assert result.ok
        summary = result.value
        assert summary.period == (2024, 1)
        assert summary.accounts_processed == 2
        assert summary.savings_credited == 1
        assert summary.total_interest == Decimal('40')
        assert summary.interest_by_account == {self.savings.id: Decimal('40')}
        assert summary.failures == {}
        assert summary.completed_at is not None

        assert self.savings.balance == Decimal('840')
        assert self.savings.transaction_log.last.entry_type == EntryType.INTEREST
        assert self.current.balance == Decimal('100')
        assert len(self.current.transaction_log) == 1

    def test_period_runs_once(self):
        """Test a second run for the same period is refused without changes"""
        self.processor.run(self.ledger, 2024, 1)
        second = self.processor.run(self.ledger, 2024, 1)

        assert second.kind == ErrorKind.PERIOD_ALREADY_PROCESSED
        assert second.error.context == {'year': 2024, 'month': 1}
        assert self.savings.balance == Decimal('840')
        assert self.processor.has_processed(2024, 1)

    def test_next_period_runs(self):
        self.processor.run(self.ledger, 2024, 1)
        assert self.processor.run(self.ledger, 2024, 2).ok
        assert self.savings.balance == Decimal('882')
        assert self.processor.processed_periods == [(2024, 1), (2024, 2)]

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_invalid_month(self, month):
        """Test an out-of-range month is a failed result, not an exception"""
        result = self.processor.run(self.ledger, 2024, month)

        assert result.kind == ErrorKind.INVALID_PERIOD
        assert result.error.context == {'year': 2024, 'month': month}
        assert self.processor.processed_periods == []
        assert self.savings.balance == Decimal('800')

    def test_ledger_invalid_month(self):
        assert self.ledger.run_month_end(2024, 13).kind == ErrorKind.INVALID_PERIOD

    def test_defaults_to_current_period(self):
        result = self.processor.run(self.ledger)
        assert result.ok
        assert len(self.processor.processed_periods) == 1

    def test_locked_account_is_reported_and_skipped(self):
        """Test a held lock is recorded as a failure while the batch continues"""
        locked = threading.Event()
        release = threading.Event()

        def hold_lock():
            with self.savings.lock:
                locked.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert locked.wait(5)
            result = self.processor.run(self.ledger, 2024, 3)
        finally:
            release.set()
            holder.join()

        summary = result.value
        assert summary.failures == {self.savings.id: "lock_timeout"}
        assert summary.accounts_processed == 1
        assert summary.savings_credited == 0
        assert self.savings.balance == Decimal('800')
        assert self.processor.processed_accounts(2024, 3) == {self.current.id}

    def test_rerun_after_timeout_credits_only_skipped_account(self):
        """Test an account skipped on a lock timeout still gets the period's interest"""
        locked = threading.Event()
        release = threading.Event()

        def hold_lock():
            with self.savings.lock:
                locked.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert locked.wait(5)
            first = self.processor.run(self.ledger, 2024, 1)
        finally:
            release.set()
            holder.join()
        assert first.value.failures == {self.savings.id: "lock_timeout"}

        retry = self.processor.run(self.ledger, 2024, 1)

        assert retry.ok
        assert retry.value.accounts_processed == 1
        assert retry.value.interest_by_account == {self.savings.id: Decimal('40')}
        assert self.savings.balance == Decimal('840')
        assert len(self.current.transaction_log) == 1

        # Every account is done now, so a third run is refused
        third = self.processor.run(self.ledger, 2024, 1)
        assert third.kind == ErrorKind.PERIOD_ALREADY_PROCESSED
        assert self.savings.balance == Decimal('840')

    def test_lock_acquisition_is_retried(self):
        """Test a lock released between attempts is picked up by a later attempt"""
        processor = MonthEndProcessor(lock_timeout=0.2, retry_attempts=5)
        locked = threading.Event()

        def hold_lock_briefly():
            with self.savings.lock:
                locked.set()
                time.sleep(0.3)

        holder = threading.Thread(target=hold_lock_briefly)
        holder.start()
        try:
            assert locked.wait(5)
            result = processor.run(self.ledger, 2024, 4)
        finally:
            holder.join()

        assert result.value.failures == {}
        assert self.savings.balance == Decimal('840')

    def test_accounts_opened_later_are_picked_up(self):
        """Test a re-run processes accounts that did not exist at the first run"""
        self.processor.run(self.ledger, 2024, 1)
        late = self.ledger.open_account(NID_B, AccountKind.SAVINGS, Decimal('100'), Decimal('10')).value

        result = self.processor.run(self.ledger, 2024, 1)

        assert result.value.interest_by_account == {late.id: Decimal('10')}
        assert self.savings.balance == Decimal('840')

    def test_summary_to_dict(self):
        summary = self.processor.run(self.ledger, 2024, 7).value
        data = summary.to_dict()
        assert data['period'] == "2024-07"
        assert data['total_interest'] == "40"

    def test_ledger_run_month_end(self):
        """Test the ledger's own processor guards periods"""
        assert self.ledger.run_month_end(2024, 5).ok
        assert self.ledger.run_month_end(2024, 5).kind == ErrorKind.PERIOD_ALREADY_PROCESSED
        assert self.savings.balance == Decimal('840')

    def test_empty_ledger(self):
        summary = MonthEndProcessor().run(Ledger("Empty", "E-1"), 2024, 1).value
        assert summary.accounts_processed == 0
        assert summary.total_interest == Decimal('0')

    def test_closed_account_is_reported(self):
        """Test an account closed after the batch listed it gets no interest"""

        class ListedAccounts:
            branch_code = "T-001"

            def __init__(self, accounts):
                self.accounts = accounts

            def iter_accounts(self):
                return iter(self.accounts)

        closed = Account(9, AccountKind.SAVINGS, Decimal('0'), Decimal('5'))
        closed.close()

        summary = self.processor.run(ListedAccounts([closed, self.savings]), 2024, 8).value

        assert summary.failures == {9: "account_not_found"}
        assert summary.interest_by_account == {self.savings.id: Decimal('40')}
