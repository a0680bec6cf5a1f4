"""
Account Ledger Module

Owns the persisted card accounts: issuing, lookup, PIN check, balance
queries, deposits, closure and atomic transfers. Financial invariants
(positive amounts, no overdraft, all-or-nothing transfers) are enforced
here regardless of what the caller already checked.
"""

from typing import List, Optional

from .accounts import MAX_BALANCE, Account
from .cards import CardIssuer, mask_number
from .config import get_config
from .exceptions import (
    AccountNotFoundError, BalanceLimitError, DuplicateAccountError, ExhaustedIdentifierSpaceError,
    InsufficientFundsError, RecipientNotFoundError, ValidationError
)
from .logging_config import get_logger, log_action
from .storage import StorageInterface


logger = get_logger(__name__)


class AccountLedger:
    """
    Card account ledger backed by a transactional store
    """

    def __init__(self, storage: StorageInterface, max_issue_attempts: Optional[int] = None):
        self.storage = storage
        self.max_issue_attempts = (
            max_issue_attempts if max_issue_attempts is not None
            else get_config().max_issue_attempts
        )
        if self.max_issue_attempts < 1:
            raise ValidationError("max_issue_attempts must be at least 1")

    @staticmethod
    def _require_positive(amount: int, what: str) -> None:
        # bool is an int subclass; True must not be a deposit of 1
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError(f"{what} must be an integer, got {amount!r}")
        if amount <= 0:
            raise ValidationError(f"{what} must be positive, got {amount}")
        if amount > MAX_BALANCE:
            raise ValidationError(f"{what} exceeds the maximum of {MAX_BALANCE}")

    def issue_account(self, issuer: CardIssuer) -> Account:
        """
        Generate an unused card number and store a new account for it

        Args:
            issuer: Source of candidate numbers and PINs

        Returns:
            The stored Account, including its PIN

        Raises:
            ExhaustedIdentifierSpaceError: if every attempt hit a used number
        """
        for attempt in range(1, self.max_issue_attempts + 1):
            card = issuer.issue()
            if self.exists(card.number):
                logger.debug("Card number collision on attempt %d", attempt)
                continue
            self.create(card.number, card.pin)
            return Account(number=card.number, pin=card.pin, balance=0)

        log_action(
            logger, "error", "No unused card number found",
            action="issue_account",
            extra={"attempts": self.max_issue_attempts}
        )
        raise ExhaustedIdentifierSpaceError(
            f"No unused card number after {self.max_issue_attempts} attempts"
        )

    def create(self, number: str, pin: str) -> None:
        """
        Store a new account with a zero balance

        The caller is expected to have checked exists(number) first.
        """
        try:
            self.storage.insert_card(number, pin, 0)
        except DuplicateAccountError:
            log_action(
                logger, "error", "Card number already issued",
                action="create_account", resource=mask_number(number)
            )
            raise

        log_action(
            logger, "info", "Account created",
            action="create_account", resource=mask_number(number)
        )

    def exists(self, number: str) -> bool:
        """Check if an account with this number is stored"""
        return self.storage.has_card(number)

    def authenticate(self, number: str, pin: str) -> bool:
        """Check a number and PIN pair (PINs are stored in plain text)"""
        authenticated = self.storage.has_card_with_pin(number, pin)
        if not authenticated:
            log_action(
                logger, "info", "Login rejected",
                action="authenticate", resource=mask_number(number)
            )
        return authenticated

    def get_account(self, number: str) -> Optional[Account]:
        """Get account by card number"""
        row = self.storage.load_card(number)
        if row:
            return Account.from_dict(row)
        return None

    def list_accounts(self) -> List[Account]:
        """Get all accounts in the order they were issued"""
        return [Account.from_dict(row) for row in self.storage.load_all()]

    def count(self) -> int:
        """Number of stored accounts"""
        return self.storage.count()

    def get_balance(self, number: str) -> int:
        """
        Get the balance of an account

        Raises:
            AccountNotFoundError: if the number is not stored
        """
        balance = self.storage.get_balance(number)
        if balance is None:
            raise AccountNotFoundError(f"Account {mask_number(number)} not found")
        return balance

    def credit(self, number: str, amount: int) -> None:
        """
        Add a positive amount to an account

        Raises:
            ValidationError: if amount is not a positive integer
            BalanceLimitError: if the balance would pass MAX_BALANCE
            AccountNotFoundError: if the number is not stored
        """
        self._require_positive(amount, "Deposit amount")

        if self.storage.add_to_balance(number, amount) != 1:
            if self.storage.has_card(number):
                raise BalanceLimitError(
                    f"Account {mask_number(number)} cannot hold {amount} more"
                )
            raise AccountNotFoundError(f"Account {mask_number(number)} not found")

        log_action(
            logger, "info", "Account credited",
            action="credit", resource=mask_number(number),
            extra={"amount": amount}
        )

    def delete_account(self, number: str) -> None:
        """Remove an account; removing a missing number does nothing"""
        deleted = self.storage.delete_card(number)
        log_action(
            logger, "info", "Account closed" if deleted else "Close requested for missing account",
            action="delete_account", resource=mask_number(number)
        )

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move money between two accounts as one unit of work

        The sender is debited by a single conditional update that only
        matches when the balance covers the amount. Both updates must hit
        exactly one row or the whole unit of work is rolled back.

        Raises:
            ValidationError: if amount is not a positive integer
            InsufficientFundsError: if the sender is missing or cannot cover amount
            RecipientNotFoundError: if the recipient row is gone
            BalanceLimitError: if the recipient balance would pass MAX_BALANCE
            StorageError: if the store fails; nothing is applied
        """
        self._require_positive(amount, "Transfer amount")

        try:
            with self.storage.atomic():
                if self.storage.withdraw_if_covered(sender, amount) != 1:
                    raise InsufficientFundsError(
                        f"Account {mask_number(sender)} cannot cover {amount}"
                    )
                if self.storage.add_to_balance(recipient, amount) != 1:
                    if self.storage.has_card(recipient):
                        raise BalanceLimitError(
                            f"Recipient {mask_number(recipient)} cannot hold {amount} more"
                        )
                    raise RecipientNotFoundError(
                        f"Recipient {mask_number(recipient)} not found"
                    )
        except InsufficientFundsError:
            log_action(
                logger, "info", "Transfer declined: insufficient funds",
                action="transfer", resource=mask_number(sender),
                extra={"recipient": mask_number(recipient), "amount": amount}
            )
            raise
        except RecipientNotFoundError:
            log_action(
                logger, "error", "Transfer rolled back: recipient vanished",
                action="transfer", resource=mask_number(sender),
                extra={"recipient": mask_number(recipient), "amount": amount}
            )
            raise

        log_action(
            logger, "info", "Transfer committed",
            action="transfer", resource=mask_number(sender),
            extra={"recipient": mask_number(recipient), "amount": amount}
        )
