"""
Ledger Registry Module

The Ledger is the bank's registry: it owns every customer and, through them,
every account. It enforces national-ID uniqueness, hands out customer and
account IDs from its own allocators, and resolves customer and account
references for transfers and the month-end batch.

There is no module-level ledger instance; callers create one and pass it
around explicitly.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional
import threading

from .accounts import Account, AccountKind, lock_accounts, validate_account_terms
from .config import LedgerConfig, get_config
from .currency import AmountLike, Currency, ZERO
from .customers import (
    Customer, DateLike, validate_date_of_birth, validate_full_name, validate_national_id
)
from .errors import ErrorKind, Result
from .ids import IdAllocator
from .logging_config import get_logger, log_action
from .month_end import MonthEndProcessor, MonthEndSummary
from .transfers import TransferCoordinator, TransferReceipt

logger = get_logger("retail_ledger.ledger")


class Ledger:
    """
    Registry of customers keyed by national ID and by customer ID
    """

    def __init__(
        self,
        name: Optional[str] = None,
        branch_code: Optional[str] = None,
        config: Optional[LedgerConfig] = None
    ):
        config = config or get_config()
        self.name = name or config.bank_name
        self.branch_code = branch_code or config.branch_code
        self.currency = Currency.from_code(config.currency)
        self.lock_timeout = config.lock_timeout_seconds
        self.lock_retry_attempts = config.lock_retry_attempts

        self._customers_by_national_id: Dict[str, Customer] = {}
        self._customers_by_id: Dict[int, Customer] = {}
        self._customer_ids = IdAllocator()
        self._account_ids = IdAllocator()
        self._lock = threading.RLock()

        self.transfers = TransferCoordinator(config=config)
        self.month_end = MonthEndProcessor(config=config)

    # Customers

    def add_customer(self, full_name: str, national_id: str, date_of_birth: DateLike) -> Result[int]:
        """
        Register a new customer

        Args:
            full_name: Customer's full name
            national_id: Exactly 14 ASCII digits, unique in this ledger
            date_of_birth: Strictly earlier than now

        Returns:
            The new customer ID; DUPLICATE_NATIONAL_ID, INVALID_NATIONAL_ID,
            INVALID_DATE_OF_BIRTH or INVALID_CUSTOMER_DATA otherwise
        """
        checks = [
            validate_full_name(full_name),
            validate_national_id(national_id),
            validate_date_of_birth(date_of_birth),
        ]
        for check in checks:
            if not check.ok:
                return self._reject("add_customer", check)
        clean_name = checks[0].value

        with self._lock:
            if national_id in self._customers_by_national_id:
                return self._reject("add_customer", Result.failure(
                    ErrorKind.DUPLICATE_NATIONAL_ID,
                    "National ID already registered",
                    national_id=national_id
                ))

            customer = Customer(
                id=self._customer_ids.allocate(),
                full_name=clean_name,
                national_id=national_id,
                date_of_birth=date_of_birth,
            )
            self._customers_by_national_id[national_id] = customer
            self._customers_by_id[customer.id] = customer

        log_action(
            logger, "info", f"Customer {customer.id} registered",
            action="add_customer", resource=f"customer:{customer.id}",
            extra={"branch_code": self.branch_code}
        )
        return Result.success(customer.id)

    def update_customer(
        self,
        national_id: str,
        full_name: Optional[str] = None,
        date_of_birth: Optional[DateLike] = None
    ) -> Result[Customer]:
        """Change a customer's name and/or date of birth; the national ID never changes"""
        with self._lock:
            customer = self._customers_by_national_id.get(national_id)
            if customer is None:
                return self._reject("update_customer", self._customer_not_found(national_id))

            clean_name = customer.full_name
            if full_name is not None:
                checked = validate_full_name(full_name)
                if not checked.ok:
                    return self._reject("update_customer", checked)
                clean_name = checked.value
            if date_of_birth is not None:
                checked = validate_date_of_birth(date_of_birth)
                if not checked.ok:
                    return self._reject("update_customer", checked)

            customer.full_name = clean_name
            if date_of_birth is not None:
                customer.date_of_birth = date_of_birth

        log_action(
            logger, "info", f"Customer {customer.id} updated",
            action="update_customer", resource=f"customer:{customer.id}"
        )
        return Result.success(customer)

    def remove_customer(self, national_id: str) -> Result[Customer]:
        """
        Remove a customer and all of its accounts permanently.

        Only allowed when every owned account balance is exactly zero.
        The removed accounts are closed, so a transfer or deposit that
        resolved one of them earlier fails instead of moving money out of
        the ledger. Account IDs of removed accounts are never reissued.

        Returns:
            The removed Customer; CUSTOMER_NOT_FOUND, NON_ZERO_BALANCE_REMOVAL
            or LOCK_TIMEOUT otherwise
        """
        with self._lock:
            customer = self._customers_by_national_id.get(national_id)
            if customer is None:
                return self._reject("remove_customer", self._customer_not_found(national_id))

            # Every account lock is held so no deposit lands between check and removal
            locks = lock_accounts(customer.accounts, self.lock_timeout, self.lock_retry_attempts)
            with locks as acquired:
                if not acquired:
                    return self._reject("remove_customer", Result.failure(
                        ErrorKind.LOCK_TIMEOUT,
                        f"Could not lock the accounts of customer {customer.id} in time",
                        customer_id=customer.id
                    ))

                if not customer.can_be_removed:
                    return self._reject("remove_customer", Result.failure(
                        ErrorKind.NON_ZERO_BALANCE_REMOVAL,
                        f"Customer {customer.id} has accounts with non-zero balance",
                        customer_id=customer.id,
                        account_ids=[a.id for a in customer.accounts if a.balance != ZERO]
                    ))

                for account in customer.accounts:
                    account.close()
                del self._customers_by_national_id[national_id]
                del self._customers_by_id[customer.id]

        log_action(
            logger, "info", f"Customer {customer.id} removed",
            action="remove_customer", resource=f"customer:{customer.id}",
            extra={"accounts_removed": [a.id for a in customer.accounts]}
        )
        return Result.success(customer)

    def find_by_name(self, name: str) -> Optional[Customer]:
        """First customer whose full name matches, ignoring case"""
        if not isinstance(name, str):
            return None
        wanted = name.strip().casefold()
        with self._lock:
            for customer in self._customers_by_national_id.values():
                if customer.full_name.casefold() == wanted:
                    return customer
        return None

    def find_by_national_id(self, national_id: str) -> Optional[Customer]:
        """Customer with exactly this national ID"""
        with self._lock:
            return self._customers_by_national_id.get(national_id)

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        """Customer by ledger-assigned ID"""
        with self._lock:
            return self._customers_by_id.get(customer_id)

    @property
    def customers(self) -> List[Customer]:
        """All customers in registration order"""
        with self._lock:
            return list(self._customers_by_national_id.values())

    # Accounts

    def open_account(
        self,
        national_id: str,
        kind: AccountKind,
        initial_balance: AmountLike,
        kind_param: AmountLike
    ) -> Result[Account]:
        """
        Open an account for an existing customer

        Args:
            national_id: Owner's national ID
            kind: AccountKind.SAVINGS or AccountKind.CURRENT
            initial_balance: Opening balance, zero or more
            kind_param: Interest rate in percent (savings) or overdraft
                limit (current), zero or more

        Returns:
            The new Account; CUSTOMER_NOT_FOUND or INVALID_AMOUNT otherwise
        """
        with self._lock:
            customer = self._customers_by_national_id.get(national_id)
            if customer is None:
                return self._reject("open_account", self._customer_not_found(national_id))

            terms = validate_account_terms(kind, initial_balance, kind_param)
            if not terms.ok:
                return self._reject("open_account", terms)
            balance, param = terms.value

            account = Account(
                account_id=self._account_ids.allocate(),
                kind=kind,
                opening_balance=balance,
                parameter=param,
                currency=self.currency,
            )
            customer.accounts.append(account)

        log_action(
            logger, "info", f"Account {account.id} opened for customer {customer.id}",
            action="open_account", resource=f"account:{account.id}",
            extra={"kind": kind.value, "initial_balance": str(balance),
                   account.policy.parameter_name: str(param)}
        )
        return Result.success(account)

    def find_account(self, national_id: str, account_id: int) -> Result[Account]:
        """Resolve an account through its owning customer"""
        with self._lock:
            customer = self._customers_by_national_id.get(national_id)
            if customer is None:
                return self._customer_not_found(national_id)
            account = customer.find_account(account_id)
        if account is None:
            return Result.failure(
                ErrorKind.ACCOUNT_NOT_FOUND,
                f"Account {account_id} not found for customer {customer.id}",
                account_id=account_id, customer_id=customer.id
            )
        return Result.success(account)

    def iter_accounts(self) -> Iterator[Account]:
        """Every account, customers in registration order"""
        for customer in self.customers:
            yield from list(customer.accounts)

    def total_holdings(self) -> Decimal:
        """Sum of every account balance in the ledger"""
        return sum((customer.total_balance() for customer in self.customers), ZERO)

    # Operations by reference

    def deposit(self, national_id: str, account_id: int, amount: AmountLike) -> Result[Decimal]:
        found = self.find_account(national_id, account_id)
        if not found.ok:
            return self._reject("deposit", found)
        return found.value.deposit(amount)

    def withdraw(self, national_id: str, account_id: int, amount: AmountLike) -> Result[Decimal]:
        found = self.find_account(national_id, account_id)
        if not found.ok:
            return self._reject("withdraw", found)
        return found.value.withdraw(amount)

    def transfer(
        self,
        from_national_id: str,
        from_account_id: int,
        to_national_id: str,
        to_account_id: int,
        amount: AmountLike
    ) -> Result[TransferReceipt]:
        """Resolve both accounts, then hand them to the transfer coordinator"""
        source = self.find_account(from_national_id, from_account_id)
        if not source.ok:
            return self._reject("transfer", source)
        destination = self.find_account(to_national_id, to_account_id)
        if not destination.ok:
            return self._reject("transfer", destination)
        return self.transfers.transfer(source.value, destination.value, amount)

    def run_month_end(self, year: Optional[int] = None, month: Optional[int] = None) -> Result[MonthEndSummary]:
        """Month-end processing for every account, once per period"""
        return self.month_end.run(self, year, month)

    # Reporting snapshots

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "branch_code": self.branch_code,
            "currency": self.currency.code,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "total_holdings": str(self.total_holdings()),
            "customers": [customer.to_dict() for customer in self.customers],
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._customers_by_national_id)

    def __contains__(self, national_id: object) -> bool:
        with self._lock:
            return national_id in self._customers_by_national_id

    def _customer_not_found(self, national_id: str) -> Result:
        return Result.failure(
            ErrorKind.CUSTOMER_NOT_FOUND,
            "No customer with that national ID",
            national_id=national_id
        )

    def _reject(self, action: str, result: Result) -> Result:
        log_action(
            logger, "warning", f"{action} rejected: {result.error.message}",
            action=action, resource=f"ledger:{self.branch_code}",
            extra={"error": result.error.kind.value}
        )
        return result

    def __repr__(self) -> str:
        return f"Ledger(name={self.name!r}, branch_code={self.branch_code!r}, customers={len(self)})"
