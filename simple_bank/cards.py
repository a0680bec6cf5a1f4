"""
Card Identifier Module

Generates 16-digit card numbers carrying a Luhn check digit and 4-digit
PINs, and validates candidate numbers. Nothing here touches storage;
uniqueness of issued numbers is the ledger's job.
"""

import random
from dataclasses import dataclass
from typing import Optional

from .config import get_config
from .exceptions import ValidationError


CARD_NUMBER_LENGTH = 16
ISSUER_PREFIX_LENGTH = 6
ACCOUNT_DIGITS = CARD_NUMBER_LENGTH - ISSUER_PREFIX_LENGTH - 1
PIN_LENGTH = 4


def _is_digits(value: str, length: int) -> bool:
    # str.isdigit() also accepts non-ASCII digits such as "²"
    return (
        isinstance(value, str)
        and len(value) == length
        and all("0" <= char <= "9" for char in value)
    )


def luhn_check_digit(body: str) -> str:
    """
    Compute the Luhn check digit for a 15-digit card body.

    Digits at even positions (counting from 0 on the left) are doubled,
    with 9 subtracted when the result exceeds 9. The check digit brings
    the total up to a multiple of 10.
    """
    if not _is_digits(body, CARD_NUMBER_LENGTH - 1):
        raise ValidationError(f"Card body must be {CARD_NUMBER_LENGTH - 1} digits")

    total = 0
    for position, char in enumerate(body):
        digit = int(char)
        if position % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return str((10 - total % 10) % 10)


def is_valid_number(number: str) -> bool:
    """Check that number is 16 digits ending in the correct Luhn digit"""
    if not _is_digits(number, CARD_NUMBER_LENGTH):
        return False
    return luhn_check_digit(number[:-1]) == number[-1]


def mask_number(number: str) -> str:
    """Hide the account digits of a card number for log output"""
    if len(number) != CARD_NUMBER_LENGTH:
        return "*" * len(number)
    return number[:ISSUER_PREFIX_LENGTH] + "*" * ACCOUNT_DIGITS + number[-1]


@dataclass(frozen=True)
class Card:
    """A freshly generated card number and PIN, not yet stored"""
    number: str
    pin: str

    def __str__(self) -> str:
        return f"Your card number:\n{self.number}\nYour card PIN:\n{self.pin}"


class CardIssuer:
    """
    Produces card numbers and PINs from an explicitly passed random source.

    Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 issuer_prefix: Optional[str] = None):
        self.rng = rng if rng is not None else random.Random()
        self.issuer_prefix = issuer_prefix if issuer_prefix is not None else get_config().issuer_prefix

        if not _is_digits(self.issuer_prefix, ISSUER_PREFIX_LENGTH):
            raise ValidationError(
                f"Issuer prefix must be {ISSUER_PREFIX_LENGTH} digits, got {self.issuer_prefix!r}"
            )

    def generate_number(self) -> str:
        """Generate a Luhn-valid card number under the issuer prefix"""
        account = self.rng.randrange(10 ** ACCOUNT_DIGITS)
        body = f"{self.issuer_prefix}{account:0{ACCOUNT_DIGITS}d}"
        return body + luhn_check_digit(body)

    def generate_pin(self) -> str:
        """Generate a zero-padded 4-digit PIN"""
        return f"{self.rng.randrange(10 ** PIN_LENGTH):0{PIN_LENGTH}d}"

    def issue(self) -> Card:
        """Generate a new number and PIN pair"""
        return Card(number=self.generate_number(), pin=self.generate_pin())
