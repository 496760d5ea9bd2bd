#!/usr/bin/env python3
"""
Reset or hand back a Freshchat conversation through the relay admin API.

Usage:
    reset_conversation.py <conversation_id>            # forget session + escalation
    reset_conversation.py <conversation_id> --to-bot   # return to bot with greeting
"""
import os
import sys

import requests

RELAY_URL = os.environ.get("RELAY_URL", "http://localhost:8000").rstrip("/")
ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    if not ADMIN_TOKEN:
        print("ADMIN_TOKEN not set")
        sys.exit(2)

    conversation_id = sys.argv[1]
    action = "return-to-bot" if "--to-bot" in sys.argv[2:] else "reset"

    r = requests.post(
        f"{RELAY_URL}/admin/conversations/{conversation_id}/{action}",
        headers={"X-Admin-Token": ADMIN_TOKEN},
        timeout=30,
    )
    print(f"{r.status_code}: {r.text}")
    sys.exit(0 if r.status_code == 200 else 1)


if __name__ == "__main__":
    main()
