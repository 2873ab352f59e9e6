#!/usr/bin/env python3
"""
Mint a vendor bearer token for local testing.

Tokens are normally issued by the auth service. This script signs one with
the same SECRET_KEY so the API can be exercised with curl or the web client.

Usage:
    python scripts/issue_token.py VENDOR_ID
    python scripts/issue_token.py VENDOR_ID --days=30
"""
import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vendor_tracker.core.config import settings  # noqa: E402
from vendor_tracker.core.security import create_access_token  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Issue a vendor bearer token")
    parser.add_argument("vendor_id", help="Vendor identifier to put in the token subject")
    parser.add_argument("--days", type=int, default=7, help="Token lifetime in days")
    args = parser.parse_args()

    if settings.secret_key == "change-me-in-production":
        print("Warning: SECRET_KEY is the default value; set it in .env for real use.")
        print()

    token = create_access_token(args.vendor_id, expires_delta=timedelta(days=args.days))

    print("=" * 60)
    print("Vendor token issued")
    print("=" * 60)
    print()
    print(f"Vendor:  {args.vendor_id}")
    print(f"Expires: in {args.days} days")
    print()
    print("Send it as:")
    print()
    print(f"Authorization: Bearer {token}")
    print()


if __name__ == "__main__":
    main()
