"""
Command-line entry point

Opens the card store named by -fileName, runs one interactive session and
closes the store on every exit path.
"""

import argparse
import random
import sys
from typing import List, Optional

from .cards import CardIssuer
from .config import get_config
from .exceptions import BankError
from .ledger import AccountLedger
from .logging_config import log_action, setup_logging
from .menu import BankingSession
from .service import BankService
from .storage import SQLiteStorage


def build_parser() -> argparse.ArgumentParser:
    config = get_config()
    parser = argparse.ArgumentParser(
        prog="simple-bank",
        description="Terminal card banking simulator",
    )
    parser.add_argument(
        "-fileName",
        dest="file_name",
        default=config.database_file,
        help=f"SQLite card store (default: {config.database_file})",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, config.log_file)

    try:
        with SQLiteStorage(args.file_name) as storage:
            ledger = AccountLedger(storage, config.max_issue_attempts)
            issuer = CardIssuer(random.Random(), config.issuer_prefix)
            BankingSession(BankService(ledger, issuer)).run()
    except KeyboardInterrupt:
        print("\nBye!")
    except BankError as e:
        log_action(
            logger, "critical", f"Session terminated: {e}",
            action="session", extra={"error": type(e).__name__}
        )
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
