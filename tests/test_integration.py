"""
Integration tests

End-to-end flows through the Ledger: the savings-to-current walkthrough and
money conservation under concurrent transfers.
"""

import random
import threading
from datetime import date
from decimal import Decimal

from retail_ledger import AccountKind, EntryType, ErrorKind, Ledger
from retail_ledger.config import LedgerConfig

NID_A = "29001011234567"
NID_B = "28505051234561"


class TestWalkthrough:
    """Savings 1000 at 5%, withdraw, month-end, transfer everything out"""

    def test_full_flow(self):
        ledger = Ledger("National Bank of Egypt", "Cairo-001")
        assert ledger.add_customer("Ahmed Hassan", NID_A, date(1990, 1, 1)).ok
        assert ledger.add_customer("Mona Adel", NID_B, date(1985, 5, 5)).ok

        savings = ledger.open_account(NID_A, AccountKind.SAVINGS, Decimal('1000'), Decimal('5')).value
        current = ledger.open_account(NID_B, AccountKind.CURRENT, Decimal('0'), Decimal('0')).value

        assert ledger.withdraw(NID_A, savings.id, Decimal('200')).value == Decimal('800')

        summary = ledger.run_month_end(2024, 1).value
        assert summary.total_interest == Decimal('40')
        assert savings.balance == Decimal('840')

        receipt = ledger.transfer(NID_A, savings.id, NID_B, current.id, Decimal('840')).value
        assert receipt.from_balance == Decimal('0')
        assert receipt.to_balance == Decimal('840')

        # One more unit is now infeasible for the emptied savings account
        again = ledger.transfer(NID_A, savings.id, NID_B, current.id, Decimal('1'))
        assert again.kind == ErrorKind.TRANSFER_INFEASIBLE
        assert again.error.cause.kind == ErrorKind.INSUFFICIENT_FUNDS

        assert [e.entry_type for e in savings.transaction_log] == [
            EntryType.OPENING, EntryType.WITHDRAWAL, EntryType.INTEREST,
            EntryType.WITHDRAWAL, EntryType.TRANSFER_OUT,
        ]
        assert [e.entry_type for e in current.transaction_log] == [
            EntryType.OPENING, EntryType.DEPOSIT, EntryType.TRANSFER_IN,
        ]

        # Savings is empty so its owner can leave; the current holder cannot
        assert ledger.remove_customer(NID_A).ok
        assert ledger.remove_customer(NID_B).kind == ErrorKind.NON_ZERO_BALANCE_REMOVAL
        assert ledger.total_holdings() == Decimal('840')

    def test_transfer_with_unknown_references(self):
        ledger = Ledger("Test Bank", "T-001")
        ledger.add_customer("Ahmed Hassan", NID_A, date(1990, 1, 1))
        account = ledger.open_account(NID_A, AccountKind.SAVINGS, 10, 0).value

        assert ledger.transfer(NID_A, account.id, NID_B, 99, 1).kind == ErrorKind.CUSTOMER_NOT_FOUND
        assert ledger.transfer(NID_A, 99, NID_A, account.id, 1).kind == ErrorKind.ACCOUNT_NOT_FOUND
        assert ledger.transfer(NID_A, account.id, NID_A, account.id, 1).kind == ErrorKind.SAME_ACCOUNT_TRANSFER


class TestConcurrentLedger:
    """Money is conserved under random concurrent transfers"""

    def test_random_transfers_conserve_total(self):
        ledger = Ledger(config=LedgerConfig(_env_file=None, lock_timeout_seconds=1.0, lock_retry_attempts=10))
        national_ids = [f"{i:014d}" for i in range(1, 5)]
        accounts = []
        for nid in national_ids:
            ledger.add_customer(f"Customer {nid[-1]}", nid, date(1990, 1, 1))
            accounts.append((nid, ledger.open_account(nid, AccountKind.CURRENT, 100, 50).value))

        start_total = ledger.total_holdings()

        def worker(seed):
            rng = random.Random(seed)
            for _ in range(40):
                (from_nid, source), (to_nid, destination) = rng.sample(accounts, 2)
                ledger.transfer(from_nid, source.id, to_nid, destination.id, Decimal(rng.randint(1, 30)))

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(60)

        assert all(not thread.is_alive() for thread in threads)
        assert ledger.total_holdings() == start_total
        for _, account in accounts:
            report = account.verify_integrity()
            assert report['valid']
            assert account.balance >= Decimal('-50')
