# scripts/issue_token.py
import argparse
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.security import create_access_token
from utils.logger import setup_logger

logger = setup_logger("ISSUE_TOKEN")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Print a bearer token for a caller principal (development only)"
    )
    parser.add_argument("principal", help="Value of the token's sub claim")
    parser.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Token lifetime; defaults to ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    expires = timedelta(minutes=args.minutes) if args.minutes else None

    try:
        token = create_access_token(args.principal, expires_delta=expires)
    except ValueError as e:
        logger.error(str(e))
        return 1

    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
