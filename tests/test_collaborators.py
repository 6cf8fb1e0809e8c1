"""
Test suite for the input-provider glue
"""

from datetime import datetime, timezone
from decimal import Decimal

from retail_ledger.accounts import AccountKind
from retail_ledger.collaborators import InputProvider, enroll_customer, open_account_from
from retail_ledger.errors import ErrorKind
from retail_ledger.ledger import Ledger


class ScriptedProvider:
    """Replays canned answers and records which reader was called"""

    def __init__(self, **answers):
        self.answers = {key: list(values) for key, values in answers.items()}
        self.calls = []

    def _next(self, name):
        self.calls.append(name)
        return self.answers[name].pop(0)

    def read_non_empty_text(self):
        return self._next("text")

    def read_national_id(self):
        return self._next("national_id")

    def read_past_date(self):
        return self._next("date")

    def read_non_negative_amount(self):
        return self._next("amount")


class TestCollaborators:

    def setup_method(self):
        """Set up test fixtures"""
        self.ledger = Ledger("Test Bank", "T-001")

    def test_provider_satisfies_protocol(self):
        assert isinstance(ScriptedProvider(), InputProvider)

    def test_enroll_customer_reads_in_order(self):
        provider = ScriptedProvider(
            text=["Ahmed Hassan"],
            national_id=["29001011234567"],
            date=[datetime(1990, 1, 1, tzinfo=timezone.utc)],
        )

        result = enroll_customer(self.ledger, provider)

        assert result.ok
        assert provider.calls == ["text", "national_id", "date"]
        assert self.ledger.get_customer(result.value).full_name == "Ahmed Hassan"

    def test_enroll_duplicate_is_reported_not_retried(self):
        answers = dict(
            text=["A", "B"],
            national_id=["29001011234567", "29001011234567"],
            date=[datetime(1990, 1, 1, tzinfo=timezone.utc)] * 2,
        )
        provider = ScriptedProvider(**answers)

        assert enroll_customer(self.ledger, provider).ok
        assert enroll_customer(self.ledger, provider).kind == ErrorKind.DUPLICATE_NATIONAL_ID
        assert len(provider.calls) == 6

    def test_open_account_reads_balance_then_parameter(self):
        self.ledger.add_customer("Ahmed Hassan", "29001011234567", datetime(1990, 1, 1, tzinfo=timezone.utc))
        provider = ScriptedProvider(amount=[Decimal('1000'), Decimal('5')])

        result = open_account_from(self.ledger, provider, "29001011234567", AccountKind.SAVINGS)

        assert result.ok
        assert result.value.balance == Decimal('1000')
        assert result.value.interest_rate == Decimal('5')
