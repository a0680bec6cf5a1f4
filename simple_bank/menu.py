"""
Interactive Menu Module

A finite-state machine over the text menu. Each state owns a table of
numbered options; choosing an option runs its handler, which returns the
next state. Input and output callables are injected so sessions can be
scripted in tests.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .exceptions import InsufficientFundsError, InvalidCardNumberError, UnknownRecipientError, ValidationError
from .service import BankService, parse_amount


class MenuState(Enum):
    """Menu states"""
    MAIN = "main"
    LOGGED_IN = "logged_in"
    EXIT = "exit"


@dataclass(frozen=True)
class MenuOption:
    """One numbered menu entry and the session method it runs"""
    key: str
    label: str
    handler: str


MENUS: Dict[MenuState, Tuple[MenuOption, ...]] = {
    MenuState.MAIN: (
        MenuOption("1", "Create an account", "create_account"),
        MenuOption("2", "Log into account", "log_in"),
        MenuOption("0", "Exit", "exit"),
    ),
    MenuState.LOGGED_IN: (
        MenuOption("1", "Balance", "show_balance"),
        MenuOption("2", "Add income", "add_income"),
        MenuOption("3", "Do transfer", "do_transfer"),
        MenuOption("4", "Close account", "close_account"),
        MenuOption("5", "Log out", "log_out"),
        MenuOption("0", "Exit", "exit"),
    ),
}


class EndOfInput(Exception):
    """Raised when the input stream is exhausted"""


class BankingSession:
    """
    One interactive session driving the bank service

    Args:
        service: Bank operations
        read_line: Returns the next input line; raises EOFError at end
        write: Emits one line of output
    """

    def __init__(self, service: BankService,
                 read_line: Callable[[], str] = input,
                 write: Callable[[str], None] = print):
        self.service = service
        self._read_line = read_line
        self._write = write
        self.state = MenuState.MAIN
        self.card_number: Optional[str] = None

    def _read(self) -> str:
        try:
            return self._read_line().strip()
        except EOFError:
            raise EndOfInput() from None

    def run(self) -> None:
        """Run until the user exits or input ends"""
        while self.state is not MenuState.EXIT:
            self.state = self.step()

    def step(self) -> MenuState:
        """Show the menu for the current state and run one choice"""
        options = MENUS[self.state]
        for option in options:
            self._write(f"{option.key}. {option.label}")

        try:
            choice = self._read()
            for option in options:
                if option.key == choice:
                    return getattr(self, option.handler)()
        except EndOfInput:
            return self.exit()

        self._write(f"Can't process your input: {choice}")
        return self.state

    # Main menu

    def create_account(self) -> MenuState:
        account = self.service.issue_account()
        self._write("Your card has been created")
        self._write("Your card number:")
        self._write(account.number)
        self._write("Your card PIN:")
        self._write(account.pin)
        return MenuState.MAIN

    def log_in(self) -> MenuState:
        self._write("Enter your card number:")
        number = self._read()
        self._write("Enter your PIN:")
        pin = self._read()

        if not self.service.login(number, pin):
            self._write("Wrong card number or PIN!")
            return MenuState.MAIN

        self.card_number = number
        self._write("You have successfully logged in!")
        return MenuState.LOGGED_IN

    def exit(self) -> MenuState:
        self._write("Bye!")
        self.card_number = None
        return MenuState.EXIT

    # Logged-in menu

    def show_balance(self) -> MenuState:
        self._write(f"Balance: {self.service.balance_of(self.card_number)}")
        return MenuState.LOGGED_IN

    def add_income(self) -> MenuState:
        self._write("Enter income:")
        response = self._read()
        try:
            self.service.deposit(self.card_number, parse_amount(response))
        except ValidationError:
            self._write(f"There was a problem with your response: {response}")
        else:
            self._write("Income was added!")
        return MenuState.LOGGED_IN

    def do_transfer(self) -> MenuState:
        self._write("Transfer")
        self._write("Enter card number:")
        recipient = self._read()
        try:
            self.service.check_recipient(recipient)
        except InvalidCardNumberError:
            self._write("Probably you made a mistake in the card number. Please try again!")
            return MenuState.LOGGED_IN
        except UnknownRecipientError:
            self._write("Such a card does not exist.")
            return MenuState.LOGGED_IN

        self._write("Enter how much money you want to transfer:")
        response = self._read()
        try:
            self.service.transfer(
                self.card_number, recipient, parse_amount(response), recipient_checked=True
            )
        except InsufficientFundsError:
            self._write("Not enough money!")
        except ValidationError:
            self._write(f"There was a problem with your response: {response}")
        else:
            self._write("Success!")
        return MenuState.LOGGED_IN

    def close_account(self) -> MenuState:
        self.service.close(self.card_number)
        self.card_number = None
        self._write("The account has been closed!")
        return MenuState.MAIN

    def log_out(self) -> MenuState:
        self.card_number = None
        self._write("You have successfully logged out!")
        return MenuState.MAIN
