"""
Banking Service Module

The operations the interactive menu needs, each mapping onto one ledger
call. Checks that depend on user input (Luhn digit, recipient existence,
amount parsing) happen here; the ledger re-checks its own invariants.
"""

from .accounts import MAX_BALANCE, Account
from .cards import CardIssuer, is_valid_number
from .exceptions import InvalidCardNumberError, UnknownRecipientError, ValidationError
from .ledger import AccountLedger


def parse_amount(text: str) -> int:
    """Parse user text as a positive integer amount"""
    stripped = text.strip()
    if not stripped.isascii() or not stripped.isdigit():
        raise ValidationError(f"Not a whole positive amount: {text!r}")
    amount = int(stripped)
    if amount <= 0:
        raise ValidationError(f"Amount must be positive: {text!r}")
    if amount > MAX_BALANCE:
        raise ValidationError(f"Amount too large: {text!r}")
    return amount


class BankService:
    """Caller-side facade over the account ledger"""

    def __init__(self, ledger: AccountLedger, issuer: CardIssuer):
        self.ledger = ledger
        self.issuer = issuer

    def issue_account(self) -> Account:
        return self.ledger.issue_account(self.issuer)

    def login(self, number: str, pin: str) -> bool:
        return self.ledger.authenticate(number, pin)

    def balance_of(self, number: str) -> int:
        return self.ledger.get_balance(number)

    def deposit(self, number: str, amount: int) -> None:
        self.ledger.credit(number, amount)

    def check_recipient(self, recipient: str) -> None:
        """
        Validate a transfer target before asking for an amount

        Raises:
            InvalidCardNumberError: if the Luhn check fails
            UnknownRecipientError: if no such card is issued
        """
        if not is_valid_number(recipient):
            raise InvalidCardNumberError(f"Card number {recipient!r} fails the Luhn check")
        if not self.ledger.exists(recipient):
            raise UnknownRecipientError("Such a card does not exist")

    def transfer(self, sender: str, recipient: str, amount: int,
                 recipient_checked: bool = False) -> None:
        """
        Send money to another card

        Pass recipient_checked=True when check_recipient() already ran for
        this recipient; the ledger still fails if it vanished meanwhile.
        Self-transfers are allowed and leave the balance unchanged.
        """
        if not recipient_checked:
            self.check_recipient(recipient)
        self.ledger.transfer(sender, recipient, amount)

    def close(self, number: str) -> None:
        self.ledger.delete_account(number)
