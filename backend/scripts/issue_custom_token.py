#!/usr/bin/env python3
"""
Issue a pre-supplied sign-in token for a fixed identity.

Usage:
    python scripts/issue_custom_token.py USER_ID [--days N]

The token is signed with JWT_SECRET_KEY and can be handed to the page via
INITIAL_AUTH_TOKEN, or exchanged at POST /api/v1/auth/token.
"""

import argparse
import logging
import os
import sys

# Add the src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from services.auth_service import AuthService

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Issue a custom sign-in token")
    parser.add_argument("user_id", help="Identity the token signs in as")
    parser.add_argument("--days", type=int, default=None, help="Token lifetime in days")
    args = parser.parse_args()

    if not os.environ.get("JWT_SECRET_KEY"):
        logger.warning("JWT_SECRET_KEY is not set, using the development secret")

    # Issuing a token never touches the users table
    auth_service = AuthService(user_table=None)
    print(auth_service.create_custom_token(args.user_id, expires_in_days=args.days))


if __name__ == "__main__":
    main()
