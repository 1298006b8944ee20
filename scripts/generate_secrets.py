#!/usr/bin/env python3
"""Generate token secrets for a GymBook .env file."""

import secrets

MIN_SECRET_BYTES = 48


def generate_all_secrets():
    """Print fresh JWT secrets, one per token type."""
    print("=" * 60)
    print("GymBook Secret Generator")
    print("=" * 60)
    print("\nCopy these values to your .env file:\n")

    print(f"JWT_SECRET={secrets.token_urlsafe(MIN_SECRET_BYTES)}")
    print(f"JWT_REFRESH_SECRET={secrets.token_urlsafe(MIN_SECRET_BYTES)}")

    print("\n" + "=" * 60)
    print("Keep these values secure and never commit them to git!")
    print("=" * 60)


if __name__ == "__main__":
    generate_all_secrets()
