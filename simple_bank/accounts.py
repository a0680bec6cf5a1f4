"""
Account Record Module

The single persisted entity: a card number, its PIN and an integer balance
in minor currency units.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict


# Largest value an SQLite INTEGER column holds
MAX_BALANCE = 2 ** 63 - 1


@dataclass
class Account:
    """Stored card account"""
    number: str
    pin: str
    balance: int = 0

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError("Account balance cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Create instance from a stored row, ignoring the surrogate id"""
        return cls(
            number=data['number'],
            pin=data['pin'],
            balance=int(data['balance'] or 0)
        )
