"""
Exception hierarchy for the card ledger.

Validation errors are recoverable at the prompt. Not-found and storage
errors mean the ledger can no longer be trusted and end the session.
"""


class BankError(Exception):
    """Base exception for all simple_bank errors."""


class ValidationError(BankError, ValueError):
    """Raised for malformed input: bad card numbers, non-positive amounts."""


class InvalidCardNumberError(ValidationError):
    """Raised when a card number fails the Luhn check."""


class UnknownRecipientError(ValidationError):
    """Raised when a transfer targets a card that is not issued."""


class InsufficientFundsError(BankError):
    """Raised when the sender cannot cover a transfer."""


class AccountNotFoundError(BankError, LookupError):
    """Raised when an operation references a card that does not exist."""


class RecipientNotFoundError(AccountNotFoundError):
    """Raised when the recipient disappears while a transfer is in flight."""


class StorageError(BankError):
    """Raised when the underlying store fails."""


class DuplicateAccountError(StorageError):
    """Raised when a card number is inserted twice."""


class ExhaustedIdentifierSpaceError(BankError):
    """Raised when no unused card number is found within the attempt limit."""


class BalanceLimitError(ValidationError):
    """Raised when a credit would push a balance past the storable maximum."""
