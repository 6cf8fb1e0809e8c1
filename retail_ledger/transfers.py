"""
Transfer Module

Moves money between two accounts as one atomic unit. The source account's
own withdrawal rule decides feasibility before anything is touched; both
account locks are held, lowest account ID first, for the whole unit, and
any failure after the first mutation restores both accounts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from .accounts import Account, coerce_amount, lock_accounts
from .config import LedgerConfig, get_config
from .currency import AmountLike, ZERO
from .errors import ErrorKind, Result
from .logging_config import get_logger, log_action
from .transaction_log import EntryType

logger = get_logger("retail_ledger.transfers")


@dataclass(frozen=True)
class TransferReceipt:
    """Outcome of a completed transfer"""
    from_account_id: int
    to_account_id: int
    amount: Decimal
    from_balance: Decimal
    to_balance: Decimal
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "amount": str(self.amount),
            "from_balance": str(self.from_balance),
            "to_balance": str(self.to_balance),
            "completed_at": self.completed_at.isoformat(),
        }


class TransferCoordinator:
    """
    Stateless transfer procedure over two resolved accounts.

    Only the lock policy (bounded wait and retry count) is configured;
    nothing about individual transfers is kept.
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

    def transfer(
        self,
        from_account: Account,
        to_account: Account,
        amount: AmountLike
    ) -> Result[TransferReceipt]:
        """
        Transfer `amount` from one account to another

        Args:
            from_account: Account to debit
            to_account: Account to credit
            amount: Positive amount to move

        Returns:
            TransferReceipt on success. Failures: INVALID_AMOUNT,
            SAME_ACCOUNT_TRANSFER, or TRANSFER_INFEASIBLE carrying the source
            account's withdrawal failure, a closed account or a lock timeout
            as its cause.
            On failure neither account is changed.
        """
        coerced = coerce_amount(amount)
        if not coerced.ok:
            return self._reject(coerced, from_account, to_account)
        value = coerced.value
        if value <= ZERO:
            return self._reject(
                Result.failure(ErrorKind.INVALID_AMOUNT, "Transfer amount must be positive", amount=value),
                from_account, to_account
            )

        if from_account is to_account or from_account.id == to_account.id:
            return self._reject(
                Result.failure(
                    ErrorKind.SAME_ACCOUNT_TRANSFER,
                    f"Cannot transfer from account {from_account.id} to itself",
                    account_id=from_account.id
                ),
                from_account, to_account
            )

        locks = lock_accounts((from_account, to_account), self.lock_timeout, self.retry_attempts)
        with locks as acquired:
            if not acquired:
                timeout = Result.failure(
                    ErrorKind.LOCK_TIMEOUT, "Could not lock both accounts in time",
                    attempts=self.retry_attempts, timeout=self.lock_timeout
                )
                return self._reject(
                    Result.failure(
                        ErrorKind.TRANSFER_INFEASIBLE,
                        "Could not lock both accounts in time",
                        cause=timeout.error,
                        reason="lock_timeout",
                        from_account_id=from_account.id, to_account_id=to_account.id
                    ),
                    from_account, to_account
                )

            if to_account.closed:
                return self._reject(
                    Result.failure(
                        ErrorKind.TRANSFER_INFEASIBLE,
                        f"Account {to_account.id} is closed",
                        cause=to_account.closed_failure().error,
                        reason=ErrorKind.ACCOUNT_NOT_FOUND.value,
                        from_account_id=from_account.id, to_account_id=to_account.id
                    ),
                    from_account, to_account
                )

            # A closed source fails here with ACCOUNT_NOT_FOUND as the cause
            feasible = from_account.can_withdraw(value)
            if not feasible.ok:
                return self._reject(
                    Result.failure(
                        ErrorKind.TRANSFER_INFEASIBLE,
                        f"Transfer of {value} from account {from_account.id} is not feasible",
                        cause=feasible.error,
                        reason=feasible.error.kind.value,
                        from_account_id=from_account.id, to_account_id=to_account.id
                    ),
                    from_account, to_account
                )

            receipt = self._apply(from_account, to_account, value)
            if not receipt.ok:
                return self._reject(receipt, from_account, to_account)

        log_action(
            logger, "info",
            f"Transferred {value} from account {from_account.id} to account {to_account.id}",
            action="transfer", resource=f"account:{from_account.id}",
            extra=receipt.value.to_dict()
        )
        return receipt

    def _apply(self, from_account: Account, to_account: Account, amount: Decimal) -> Result[TransferReceipt]:
        """Both locks are held; restore both accounts if any step fails"""
        from_checkpoint = from_account.checkpoint()
        to_checkpoint = to_account.checkpoint()

        try:
            withdrawn = from_account.withdraw(amount)
            deposited = to_account.deposit(amount) if withdrawn.ok else None
            failed = withdrawn if not withdrawn.ok else deposited
            if not failed.ok:
                from_account.restore(from_checkpoint)
                to_account.restore(to_checkpoint)
                return Result.failure(
                    ErrorKind.TRANSFER_INFEASIBLE,
                    "Transfer rolled back",
                    cause=failed.error,
                    reason="rolled_back",
                    from_account_id=from_account.id, to_account_id=to_account.id
                )

            from_account.add_note(
                EntryType.TRANSFER_OUT,
                f"Transferred {amount} to account {to_account.id}",
                counterparty_account_id=to_account.id
            )
            to_account.add_note(
                EntryType.TRANSFER_IN,
                f"Received {amount} from account {from_account.id}",
                counterparty_account_id=from_account.id
            )
        except Exception:
            from_account.restore(from_checkpoint)
            to_account.restore(to_checkpoint)
            raise

        return Result.success(TransferReceipt(
            from_account_id=from_account.id,
            to_account_id=to_account.id,
            amount=amount,
            from_balance=from_account.balance,
            to_balance=to_account.balance,
        ))

    def _reject(self, result: Result, from_account: Account, to_account: Account) -> Result:
        log_action(
            logger, "warning",
            f"Transfer from account {from_account.id} to account {to_account.id} rejected: {result.error.message}",
            action="transfer", resource=f"account:{from_account.id}",
            extra={"error": result.error.kind.value, "to_account_id": to_account.id}
        )
        return result
