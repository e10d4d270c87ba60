#!/usr/bin/env python3
"""
mint_token.py — Print a bearer token for local development

Signs a principal with the SECRET_KEY from the environment (or .env), the
same way the identity provider's tokens are verified by the service.

Usage:
    python scripts/mint_token.py alice
    python scripts/mint_token.py host-1 --role admin --org venue-42
    python scripts/mint_token.py alice --header

Flags:
    --role      singer (default) or admin
    --org       Organization id carried by the token
    --header    Print a full ``Authorization: Bearer ...`` header line
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from karaoke.auth import AuthenticatedPrincipal, create_access_token  # noqa: E402
from karaoke.models import Role  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Mint a bearer token for the karaoke queue service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("user_id", help="Subject (user id) of the token")
    parser.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.SINGER.value,
        help="Role claim (default: singer)",
    )
    parser.add_argument("--org", default=None, help="Organization id claim")
    parser.add_argument(
        "--header", action="store_true", help="Print as an Authorization header"
    )
    args = parser.parse_args()

    principal = AuthenticatedPrincipal(id=args.user_id, role=Role(args.role), org_id=args.org)
    token = create_access_token(principal)
    print(f"Authorization: Bearer {token}" if args.header else token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
