"""
Transaction Log Module

Append-only, hash-chained record of every balance-changing event on an
account. Entries are immutable once appended; each one carries the SHA-256
hash of its predecessor so any edit or reordering breaks the chain.
"""

import hashlib
import json
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .currency import ZERO


class EntryType(Enum):
    """Kinds of transaction log entries"""
    OPENING = "opening"             # Opening balance, always first
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTEREST = "interest"           # Month-end interest credit
    TRANSFER_OUT = "transfer_out"   # Cross-reference note, zero amount
    TRANSFER_IN = "transfer_in"     # Cross-reference note, zero amount


# Entry types whose amount moves the balance
BALANCE_CHANGING = frozenset({EntryType.DEPOSIT, EntryType.WITHDRAWAL, EntryType.INTEREST})


@dataclass(frozen=True)
class LogEntry:
    """
    One immutable line of an account's transaction log.

    `amount` is signed: deposits and interest are positive, withdrawals
    negative, cross-reference notes zero. For the opening entry `amount` is
    the opening balance itself.
    """
    sequence: int
    entry_type: EntryType
    amount: Decimal
    balance_after: Decimal
    description: str
    timestamp: datetime
    previous_hash: str
    current_hash: str
    counterparty_account_id: Optional[int] = None

    def hash_payload(self) -> Dict[str, Any]:
        return {
            'sequence': self.sequence,
            'entry_type': self.entry_type.value,
            'amount': str(self.amount),
            'balance_after': str(self.balance_after),
            'description': self.description,
            'timestamp': self.timestamp.isoformat(),
            'previous_hash': self.previous_hash,
            'counterparty_account_id': self.counterparty_account_id,
        }

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        json_data = json.dumps(self.hash_payload(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    @property
    def changes_balance(self) -> bool:
        return self.entry_type in BALANCE_CHANGING

    def to_dict(self) -> Dict[str, Any]:
        result = self.hash_payload()
        result['current_hash'] = self.current_hash
        return result

    def __str__(self) -> str:
        return self.description


class TransactionLog(Sequence):
    """
    Append-only sequence of LogEntry objects.

    Supports len(), indexing and iteration. Entries are never removed or
    replaced; the one exception is truncate(), used only by transfer
    rollback to undo entries appended within the same unit of work.
    """

    def __init__(self, opening_balance: Decimal, opened_at: datetime):
        self._entries: List[LogEntry] = []
        self._append(
            EntryType.OPENING,
            opening_balance,
            opening_balance,
            f"Account opened with balance: {opening_balance}",
            opened_at,
        )

    def _append(
        self,
        entry_type: EntryType,
        amount: Decimal,
        balance_after: Decimal,
        description: str,
        timestamp: Optional[datetime] = None,
        counterparty_account_id: Optional[int] = None
    ) -> LogEntry:
        previous_hash = self._entries[-1].current_hash if self._entries else ""
        entry = LogEntry(
            sequence=len(self._entries),
            entry_type=entry_type,
            amount=amount,
            balance_after=balance_after,
            description=description,
            timestamp=timestamp or datetime.now(timezone.utc),
            previous_hash=previous_hash,
            current_hash="",
            counterparty_account_id=counterparty_account_id,
        )
        entry = replace(entry, current_hash=entry.calculate_hash())
        self._entries.append(entry)
        return entry

    def append(
        self,
        entry_type: EntryType,
        amount: Decimal,
        balance_after: Decimal,
        description: str,
        counterparty_account_id: Optional[int] = None
    ) -> LogEntry:
        """Append a new entry stamped with the current UTC time"""
        if entry_type == EntryType.OPENING:
            raise ValueError("Only the first entry may be an opening entry")
        return self._append(
            entry_type, amount, balance_after, description,
            counterparty_account_id=counterparty_account_id
        )

    def truncate(self, length: int) -> None:
        """Drop entries past `length`; never touches the opening entry"""
        if length < 1 or length > len(self._entries):
            raise ValueError(f"Cannot truncate log of {len(self._entries)} entries to {length}")
        del self._entries[length:]

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._entries[index])
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))

    @property
    def opening(self) -> LogEntry:
        return self._entries[0]

    @property
    def last(self) -> LogEntry:
        return self._entries[-1]

    def entries(self) -> Tuple[LogEntry, ...]:
        """Immutable snapshot of all entries"""
        return tuple(self._entries)

    def computed_balance(self) -> Decimal:
        """Opening balance plus the signed sum of every balance-changing entry"""
        total = self.opening.amount
        for entry in self._entries[1:]:
            if entry.changes_balance:
                total += entry.amount
        return total

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify hashes, chain continuity and running balances

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'entries_checked': len(self._entries),
            'hash_errors': [],
            'chain_breaks': [],
            'balance_errors': [],
        }

        previous_hash = ""
        running = ZERO
        for position, entry in enumerate(self._entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append(position)
            if entry.previous_hash != previous_hash or entry.sequence != position:
                result['valid'] = False
                result['chain_breaks'].append(position)
            previous_hash = entry.current_hash

            if position == 0:
                running = entry.amount
            elif entry.changes_balance:
                running += entry.amount
            if entry.balance_after != running:
                result['valid'] = False
                result['balance_errors'].append(position)

        return result