"""
Storage Backend Module

Provides the abstract card store interface and implementations for in-memory
(testing) and SQLite (persistence). Balances are integers in minor units.

Writes made outside a unit of work are committed immediately. Inside
``atomic()`` they are committed together or rolled back together.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Any, Union
import copy
import logging
import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager

from .accounts import MAX_BALANCE
from .exceptions import DuplicateAccountError, StorageError


logger = logging.getLogger(__name__)


class StorageInterface(ABC):
    """Abstract interface for card storage backends"""

    table = "card"

    @abstractmethod
    def insert_card(self, number: str, pin: str, balance: int = 0) -> None:
        """Insert a new card row"""
        pass

    @abstractmethod
    def has_card(self, number: str) -> bool:
        """Check if a card with this number exists"""
        pass

    @abstractmethod
    def has_card_with_pin(self, number: str, pin: str) -> bool:
        """Check if a card with this exact number and PIN exists"""
        pass

    @abstractmethod
    def get_balance(self, number: str) -> Optional[int]:
        """Return the stored balance, or None if the card does not exist"""
        pass

    @abstractmethod
    def load_card(self, number: str) -> Optional[Dict[str, Any]]:
        """Load a card row"""
        pass

    @abstractmethod
    def load_all(self) -> List[Dict[str, Any]]:
        """Load all card rows in insertion order"""
        pass

    @abstractmethod
    def count(self) -> int:
        """Count card rows"""
        pass

    @abstractmethod
    def add_to_balance(self, number: str, amount: int) -> int:
        """
        Add amount to a balance, returning the number of rows updated.

        Balances never pass MAX_BALANCE, so 0 means either no such card or
        a credit that would overflow.
        """
        pass

    @abstractmethod
    def withdraw_if_covered(self, number: str, amount: int) -> int:
        """
        Subtract amount from a balance only where the balance covers it.

        A single conditional update; returns the number of rows updated, so
        0 means either no such card or not enough money.
        """
        pass

    @abstractmethod
    def delete_card(self, number: str) -> int:
        """Delete a card row, returning the number of rows deleted"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Delete all card rows"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start a unit of work"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current unit of work"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard the current unit of work"""
        pass

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """True while a unit of work is open"""
        pass

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException as exc:
            try:
                self.rollback()
            except Exception:
                # Original exception still propagates
                logger.exception("Rollback failed while handling %s", type(exc).__name__)
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._cards: Dict[str, Dict[str, Any]] = {}
        self._next_id = 1
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot = None
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("Storage is closed")

    def insert_card(self, number: str, pin: str, balance: int = 0) -> None:
        """Insert a new card row"""
        with self._lock:
            self._check_open()
            if number in self._cards:
                raise DuplicateAccountError(f"Card number already stored in {self.table}")
            self._cards[number] = {
                "id": self._next_id,
                "number": number,
                "pin": pin,
                "balance": balance,
            }
            self._next_id += 1

    def has_card(self, number: str) -> bool:
        """Check if a card with this number exists"""
        with self._lock:
            self._check_open()
            return number in self._cards

    def has_card_with_pin(self, number: str, pin: str) -> bool:
        """Check if a card with this exact number and PIN exists"""
        with self._lock:
            self._check_open()
            card = self._cards.get(number)
            return card is not None and card["pin"] == pin

    def get_balance(self, number: str) -> Optional[int]:
        """Return the stored balance, or None if the card does not exist"""
        with self._lock:
            self._check_open()
            card = self._cards.get(number)
            return card["balance"] if card else None

    def load_card(self, number: str) -> Optional[Dict[str, Any]]:
        """Load a card row"""
        with self._lock:
            self._check_open()
            card = self._cards.get(number)
            # Copy to prevent external mutation
            return dict(card) if card else None

    def load_all(self) -> List[Dict[str, Any]]:
        """Load all card rows in insertion order"""
        with self._lock:
            self._check_open()
            rows = sorted(self._cards.values(), key=lambda card: card["id"])
            return [dict(card) for card in rows]

    def count(self) -> int:
        """Count card rows"""
        with self._lock:
            self._check_open()
            return len(self._cards)

    def add_to_balance(self, number: str, amount: int) -> int:
        """Add amount to a balance, returning the number of rows updated"""
        with self._lock:
            self._check_open()
            card = self._cards.get(number)
            if card is None or card["balance"] > MAX_BALANCE - amount:
                return 0
            card["balance"] += amount
            return 1

    def withdraw_if_covered(self, number: str, amount: int) -> int:
        """Subtract amount only where the balance covers it"""
        with self._lock:
            self._check_open()
            card = self._cards.get(number)
            if card is None or card["balance"] < amount:
                return 0
            card["balance"] -= amount
            return 1

    def delete_card(self, number: str) -> int:
        """Delete a card row, returning the number of rows deleted"""
        with self._lock:
            self._check_open()
            if self._cards.pop(number, None) is None:
                return 0
            return 1

    def clear(self) -> None:
        """Delete all card rows"""
        with self._lock:
            self._check_open()
            self._cards = {}

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin_transaction(self) -> None:
        """Start a unit of work, snapshotting the rows"""
        with self._lock:
            self._check_open()
            if self._depth == 0:
                self._snapshot = (copy.deepcopy(self._cards), self._next_id)
            self._depth += 1

    def commit(self) -> None:
        """Commit the current unit of work"""
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None

    def rollback(self) -> None:
        """Restore the rows captured when the unit of work began"""
        with self._lock:
            if self._depth == 0:
                return
            self._cards, self._next_id = self._snapshot
            self._snapshot = None
            self._depth = 0

    def close(self) -> None:
        """Close storage (drops any open unit of work)"""
        with self._lock:
            if self._closed:
                return
            self.rollback()
            self._closed = True


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        try:
            # 'DEFERRED' leaves transaction control to commit()/rollback()
            self._connection = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level='DEFERRED'
            )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open card store {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row

        try:
            self._ensure_table()
        except StorageError:
            self._connection.close()
            self._connection = None
            raise
        logger.debug("Opened card store %s", self.db_path)

    @contextmanager
    def _translate_errors(self, operation: str,
                          integrity_error: type = StorageError) -> Iterator[None]:
        """Re-raise sqlite3 failures as StorageError"""
        if self._connection is None:
            raise StorageError("Storage is closed")
        try:
            yield
        except sqlite3.IntegrityError as e:
            raise integrity_error(f"{operation} violated a constraint: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"{operation} failed: {e}") from e
        except OverflowError as e:
            raise StorageError(f"{operation} failed: {e}") from e

    def _write(self, operation: str, sql: str, params: tuple,
               integrity_error: type = StorageError) -> int:
        """Run a write statement, committing unless a unit of work is open"""
        with self._lock, self._translate_errors(operation, integrity_error):
            cursor = self._connection.execute(sql, params)

            # Only commit if not in transaction
            if self._depth == 0:
                self._connection.commit()
            return cursor.rowcount

    def _ensure_table(self) -> None:
        """Ensure the card table exists with its schema"""
        with self._lock, self._translate_errors("Schema setup"):
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id INTEGER PRIMARY KEY,
                    number TEXT NOT NULL,
                    pin TEXT NOT NULL,
                    balance INTEGER DEFAULT 0
                )
            """)
            self._connection.execute(f"""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_{self.table}_number
                ON {self.table}(number)
            """)
            self._connection.commit()

    def insert_card(self, number: str, pin: str, balance: int = 0) -> None:
        """Insert a new card row"""
        self._write("Insert card", f"""
            INSERT INTO {self.table} (number, pin, balance) VALUES (?, ?, ?)
        """, (number, pin, balance), integrity_error=DuplicateAccountError)

    def has_card(self, number: str) -> bool:
        """Check if a card with this number exists"""
        with self._lock, self._translate_errors("Card lookup"):
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {self.table} WHERE number = ? LIMIT 1
            """, (number,))
            return cursor.fetchone() is not None

    def has_card_with_pin(self, number: str, pin: str) -> bool:
        """Check if a card with this exact number and PIN exists"""
        with self._lock, self._translate_errors("Card lookup"):
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {self.table} WHERE number = ? AND pin = ? LIMIT 1
            """, (number, pin))
            return cursor.fetchone() is not None

    def get_balance(self, number: str) -> Optional[int]:
        """Return the stored balance, or None if the card does not exist"""
        with self._lock, self._translate_errors("Balance lookup"):
            cursor = self._connection.execute(f"""
                SELECT balance FROM {self.table} WHERE number = ?
            """, (number,))
            row = cursor.fetchone()
            if row is None:
                return None
            return row['balance'] or 0

    def load_card(self, number: str) -> Optional[Dict[str, Any]]:
        """Load a card row"""
        with self._lock, self._translate_errors("Card lookup"):
            cursor = self._connection.execute(f"""
                SELECT id, number, pin, balance FROM {self.table} WHERE number = ?
            """, (number,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def load_all(self) -> List[Dict[str, Any]]:
        """Load all card rows in insertion order"""
        with self._lock, self._translate_errors("Card listing"):
            cursor = self._connection.execute(f"""
                SELECT id, number, pin, balance FROM {self.table} ORDER BY id
            """)
            return [dict(row) for row in cursor.fetchall()]

    def count(self) -> int:
        """Count card rows"""
        with self._lock, self._translate_errors("Card count"):
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {self.table}
            """)
            return cursor.fetchone()['count']

    def add_to_balance(self, number: str, amount: int) -> int:
        """Add amount to a balance, returning the number of rows updated"""
        return self._write("Credit", f"""
            UPDATE {self.table} SET balance = balance + ?
            WHERE number = ? AND balance <= ?
        """, (amount, number, MAX_BALANCE - amount))

    def withdraw_if_covered(self, number: str, amount: int) -> int:
        """Subtract amount only where the balance covers it"""
        return self._write("Debit", f"""
            UPDATE {self.table} SET balance = balance - ?
            WHERE number = ? AND balance >= ?
        """, (amount, number, amount))

    def delete_card(self, number: str) -> int:
        """Delete a card row, returning the number of rows deleted"""
        return self._write("Delete card", f"""
            DELETE FROM {self.table} WHERE number = ?
        """, (number,))

    def clear(self) -> None:
        """Delete all card rows"""
        self._write("Clear cards", f"DELETE FROM {self.table}", ())

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin_transaction(self) -> None:
        """Start a unit of work"""
        with self._lock:
            if self._connection is None:
                raise StorageError("Storage is closed")
            # SQLite with isolation_level='DEFERRED' opens the transaction on
            # the first write; nested calls join the outer unit of work
            self._depth += 1

    def commit(self) -> None:
        """Commit current unit of work"""
        with self._lock:
            if self._depth == 0:
                return
            if self._depth == 1:
                # Depth stays open on failure so the caller can roll back
                with self._translate_errors("Commit"):
                    self._connection.commit()
            self._depth -= 1

    def rollback(self) -> None:
        """Rollback current unit of work"""
        with self._lock:
            if self._depth == 0:
                return
            self._depth = 0
            with self._translate_errors("Rollback"):
                self._connection.rollback()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection is None:
                return
            try:
                if self._depth:
                    logger.warning("Closing card store with an open unit of work; rolling back")
                    self._connection.rollback()
                    self._depth = 0
            finally:
                self._connection.close()
                self._connection = None
                logger.debug("Closed card store %s", self.db_path)
