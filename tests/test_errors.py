"""
Test suite for the Result type and error taxonomy
"""

import pytest
from decimal import Decimal

from retail_ledger.errors import ErrorKind, LedgerError, LedgerException, Result


class TestResult:
    """Test Result functionality"""

    def test_success(self):
        result = Result.success(Decimal('5'))
        assert result.ok
        assert result
        assert result.kind is None
        assert result.unwrap() == Decimal('5')

    def test_success_without_value(self):
        result = Result.success()
        assert result.ok
        assert result.value is None

    def test_failure(self):
        result = Result.failure(ErrorKind.INSUFFICIENT_FUNDS, "Not enough", account_id=3)
        assert not result.ok
        assert not result
        assert result.kind == ErrorKind.INSUFFICIENT_FUNDS
        assert result.error.context == {'account_id': 3}
        assert result.value is None

    def test_unwrap_failure_raises(self):
        result = Result.failure(ErrorKind.CUSTOMER_NOT_FOUND, "missing")
        with pytest.raises(LedgerException) as exc_info:
            result.unwrap()
        assert exc_info.value.kind == ErrorKind.CUSTOMER_NOT_FOUND
        assert "customer_not_found: missing" in str(exc_info.value)

    def test_cannot_carry_both(self):
        with pytest.raises(ValueError):
            Result(value=1, error=LedgerError(ErrorKind.INVALID_AMOUNT, "x"))

    def test_error_to_dict_with_cause(self):
        cause = LedgerError(ErrorKind.OVERDRAFT_EXCEEDED, "over", {'amount': Decimal('10')})
        result = Result.failure(ErrorKind.TRANSFER_INFEASIBLE, "no", cause=cause, reason="overdraft_exceeded")

        data = result.error.to_dict()
        assert data['kind'] == "transfer_infeasible"
        assert data['context'] == {'reason': "overdraft_exceeded"}
        assert data['cause']['kind'] == "overdraft_exceeded"
        assert data['cause']['context'] == {'amount': "10"}
