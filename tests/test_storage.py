"""
Tests for storage backends and transaction support
"""

import pytest
import sqlite3
import tempfile
from pathlib import Path

from simple_bank.accounts import MAX_BALANCE
from simple_bank.exceptions import DuplicateAccountError, StorageError
from simple_bank.storage import InMemoryStorage, SQLiteStorage, StorageInterface


CARD_A = "4000001234567899"
CARD_B = "4000008449433403"


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Each backend under the same contract"""
    if request.param == "memory":
        backend = InMemoryStorage()
        yield backend
        backend.close()
    else:
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = SQLiteStorage(Path(temp_dir) / "card.s3db")
            yield backend
            backend.close()


class TestStorageInterface:
    """Test basic card operations on every backend"""

    def test_insert_and_lookup(self, storage):
        """Test insert, existence and PIN checks"""
        storage.insert_card(CARD_A, "0123")

        assert storage.has_card(CARD_A)
        assert not storage.has_card(CARD_B)
        assert storage.has_card_with_pin(CARD_A, "0123")
        assert not storage.has_card_with_pin(CARD_A, "123")
        assert not storage.has_card_with_pin(CARD_B, "0123")
        assert storage.get_balance(CARD_A) == 0
        assert storage.get_balance(CARD_B) is None

    def test_load_card_and_load_all(self, storage):
        """Test rows come back in insertion order with surrogate ids"""
        storage.insert_card(CARD_B, "1111", 5)
        storage.insert_card(CARD_A, "2222")

        row = storage.load_card(CARD_B)
        assert row["number"] == CARD_B
        assert row["pin"] == "1111"
        assert row["balance"] == 5
        assert "id" in row
        assert storage.load_card("4000000000000002") is None

        numbers = [row["number"] for row in storage.load_all()]
        assert numbers == [CARD_B, CARD_A]
        assert storage.count() == 2

    def test_duplicate_number_rejected(self, storage):
        """Test the store refuses a second row for one number"""
        storage.insert_card(CARD_A, "0000")
        with pytest.raises(DuplicateAccountError):
            storage.insert_card(CARD_A, "9999")
        assert storage.count() == 1
        assert isinstance(DuplicateAccountError("x"), StorageError)

    def test_add_to_balance_reports_rows(self, storage):
        """Test credits return the number of rows updated"""
        storage.insert_card(CARD_A, "0000")
        assert storage.add_to_balance(CARD_A, 70) == 1
        assert storage.add_to_balance(CARD_B, 70) == 0
        assert storage.get_balance(CARD_A) == 70

    def test_add_to_balance_refuses_past_max(self, storage):
        """Test a credit that would overflow the balance updates nothing"""
        storage.insert_card(CARD_A, "0000", MAX_BALANCE - 1)

        assert storage.add_to_balance(CARD_A, 2) == 0
        assert storage.add_to_balance(CARD_A, 1) == 1
        assert storage.add_to_balance(CARD_A, 1) == 0

        balance = storage.get_balance(CARD_A)
        assert balance == MAX_BALANCE
        assert isinstance(balance, int)

    def test_withdraw_only_when_covered(self, storage):
        """Test the conditional debit never drives a balance negative"""
        storage.insert_card(CARD_A, "0000", 100)

        assert storage.withdraw_if_covered(CARD_A, 101) == 0
        assert storage.get_balance(CARD_A) == 100
        assert storage.withdraw_if_covered(CARD_A, 100) == 1
        assert storage.get_balance(CARD_A) == 0
        assert storage.withdraw_if_covered(CARD_B, 1) == 0

    def test_delete_card(self, storage):
        """Test delete reports rows and is repeatable"""
        storage.insert_card(CARD_A, "0000")
        assert storage.delete_card(CARD_A) == 1
        assert storage.delete_card(CARD_A) == 0
        assert not storage.has_card(CARD_A)

    def test_clear(self, storage):
        """Test clear removes every row"""
        storage.insert_card(CARD_A, "0000")
        storage.insert_card(CARD_B, "0000")
        storage.clear()
        assert storage.count() == 0


class TestTransactionSupport:
    """Test atomic unit-of-work support"""

    def test_atomic_commits(self, storage):
        """Test a successful unit of work is applied"""
        storage.insert_card(CARD_A, "0000", 100)
        storage.insert_card(CARD_B, "0000")

        with storage.atomic():
            assert storage.in_transaction
            storage.withdraw_if_covered(CARD_A, 40)
            storage.add_to_balance(CARD_B, 40)

        assert not storage.in_transaction
        assert storage.get_balance(CARD_A) == 60
        assert storage.get_balance(CARD_B) == 40

    def test_atomic_rolls_back_on_error(self, storage):
        """Test an exception discards every write in the unit of work"""
        storage.insert_card(CARD_A, "0000", 100)

        with pytest.raises(ValueError, match="Simulated error"):
            with storage.atomic():
                storage.withdraw_if_covered(CARD_A, 100)
                storage.insert_card(CARD_B, "0000")
                storage.delete_card(CARD_A)
                raise ValueError("Simulated error")

        assert not storage.in_transaction
        assert storage.get_balance(CARD_A) == 100
        assert not storage.has_card(CARD_B)

    def test_nested_atomic_joins_outer(self, storage):
        """Test an inner block is undone when the outer block fails"""
        storage.insert_card(CARD_A, "0000", 10)

        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.add_to_balance(CARD_A, 5)
                assert storage.in_transaction
                raise RuntimeError("outer failure")

        assert storage.get_balance(CARD_A) == 10

    def test_failed_rollback_reraises_original_error(self, storage, monkeypatch, caplog):
        """Test a rollback failure is logged and the block's own error propagates"""
        storage.insert_card(CARD_A, "0000", 100)
        real_rollback = storage.rollback

        def failing_rollback():
            real_rollback()
            raise StorageError("rollback failed")

        monkeypatch.setattr(storage, "rollback", failing_rollback)

        with caplog.at_level("ERROR", logger="simple_bank.storage"):
            with pytest.raises(ValueError, match="Simulated error"):
                with storage.atomic():
                    storage.withdraw_if_covered(CARD_A, 100)
                    raise ValueError("Simulated error")

        assert "Rollback failed while handling ValueError" in caplog.text
        assert not storage.in_transaction
        assert storage.get_balance(CARD_A) == 100

    def test_commit_and_rollback_without_transaction(self, storage):
        """Test stray commit/rollback calls are harmless"""
        storage.commit()
        storage.rollback()
        assert not storage.in_transaction


class TestSQLiteStorage:
    """Test SQLite persistence details"""

    def test_schema_matches_card_table(self):
        """Test the card table columns and default balance"""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "card.s3db"
            SQLiteStorage(db_path).close()

            connection = sqlite3.connect(db_path)
            try:
                columns = [row[1] for row in connection.execute("PRAGMA table_info(card)")]
                assert columns == ["id", "number", "pin", "balance"]

                connection.execute("INSERT INTO card (number, pin) VALUES ('4000001234567899', '0000')")
                connection.commit()
            finally:
                connection.close()

            with SQLiteStorage(db_path) as storage:
                assert storage.get_balance(CARD_A) == 0

    def test_data_persists_across_connections(self):
        """Test committed rows survive reopening the file"""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "card.s3db"

            with SQLiteStorage(db_path) as storage:
                storage.insert_card(CARD_A, "0042", 0)
                storage.add_to_balance(CARD_A, 250)

            with SQLiteStorage(db_path) as storage:
                assert storage.has_card_with_pin(CARD_A, "0042")
                assert storage.get_balance(CARD_A) == 250

    def test_rolled_back_writes_not_persisted(self):
        """Test a failed unit of work leaves nothing on disk"""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "card.s3db"

            with SQLiteStorage(db_path) as storage:
                storage.insert_card(CARD_A, "0000", 100)
                with pytest.raises(ValueError):
                    with storage.atomic():
                        storage.withdraw_if_covered(CARD_A, 100)
                        raise ValueError("abort")

            with SQLiteStorage(db_path) as storage:
                assert storage.get_balance(CARD_A) == 100

    def test_close_is_idempotent_and_final(self):
        """Test the connection is released once and then unusable"""
        storage = SQLiteStorage()
        storage.close()
        storage.close()
        with pytest.raises(StorageError, match="closed"):
            storage.has_card(CARD_A)

    def test_open_failure_raises_storage_error(self):
        """Test an unusable path surfaces as StorageError"""
        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(StorageError):
                SQLiteStorage(Path(temp_dir) / "missing" / "card.s3db")

    def test_sqlite_errors_translated(self):
        """Test driver errors surface as StorageError"""
        storage = SQLiteStorage()
        storage._connection.execute("DROP TABLE card")
        with pytest.raises(StorageError):
            storage.add_to_balance(CARD_A, 1)
        storage.close()

    def test_oversized_integer_translated(self):
        """Test an amount SQLite cannot bind surfaces as StorageError"""
        with SQLiteStorage() as storage:
            storage.insert_card(CARD_A, "0000", 100)
            with pytest.raises(StorageError, match="Debit failed"):
                storage.withdraw_if_covered(CARD_A, 2 ** 64)
            assert storage.get_balance(CARD_A) == 100


class TestInMemoryStorage:
    """Test in-memory specifics"""

    def test_is_storage_interface(self):
        assert isinstance(InMemoryStorage(), StorageInterface)

    def test_loaded_rows_are_copies(self):
        """Test callers cannot mutate stored rows"""
        storage = InMemoryStorage()
        storage.insert_card(CARD_A, "0000")
        storage.load_card(CARD_A)["balance"] = 1000
        assert storage.get_balance(CARD_A) == 0

    def test_closed_storage_rejects_calls(self):
        storage = InMemoryStorage()
        storage.close()
        with pytest.raises(StorageError):
            storage.count()
