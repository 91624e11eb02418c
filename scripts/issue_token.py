#!/usr/bin/env python3
"""
Mint a bearer token for local testing of the cart API.

Usage:
    python scripts/issue_token.py 42
    curl -H "Authorization: Bearer $(python scripts/issue_token.py 42)" localhost:8000/api/cart
"""
import argparse
import os
import sys
from datetime import timedelta

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.security import create_access_token

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Issue a dev JWT for a user id.")
    parser.add_argument("user_id", type=int)
    parser.add_argument("--minutes", type=int, default=None, help="token lifetime")
    args = parser.parse_args()
    delta = timedelta(minutes=args.minutes) if args.minutes else None
    print(create_access_token(args.user_id, expires_delta=delta))
