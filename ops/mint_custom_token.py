from __future__ import annotations

import argparse
import sys

from classifieds.core.config import settings
from classifieds.services.auth import mint_custom_token


def main() -> int:
    p = argparse.ArgumentParser(description="Mint a custom sign-in token for a fixed identity.")
    p.add_argument("uid", help="identity id the token signs in as")
    args = p.parse_args()

    if settings.custom_token_key.get_secret_value() == "IN_ENV":
        print("CUSTOM_TOKEN_KEY is not configured.", file=sys.stderr)
        return 2

    print(mint_custom_token(args.uid))
    print(f"valid for {settings.custom_token_ttl_seconds}s", file=sys.stderr)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
