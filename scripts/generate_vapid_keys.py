#!/usr/bin/env python3
"""Generate a VAPID key pair for Web Push.

One-time setup tool. Prints both halves of a fresh P-256 key
pair as base64url, ready to paste into a .env file.

Usage:
    uv run scripts/generate_vapid_keys.py
"""

from __future__ import annotations

from homepush.push.vapid import generate_vapid_keys


def main() -> None:
    public_key, private_key = generate_vapid_keys()
    print("Add these to your .env file:\n")
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")


if __name__ == "__main__":
    main()
