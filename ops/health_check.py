#!/usr/bin/env python3
"""
Health check for the Freshchat relay.
Sends Telegram alert if the relay is down or degraded.
Run via cron every 5 minutes.
"""
import os
import sys
from datetime import datetime

import requests

# Config
TELEGRAM_TOKEN = os.environ.get("ALERT_BOT_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("ALERT_CHAT_ID")
RELAY_URL = os.environ.get("RELAY_URL", "http://localhost:8000").rstrip("/")
ESCALATION_WARN_COUNT = int(os.environ.get("RELAY_ESCALATION_WARN_COUNT", "50"))


def send_telegram(message):
    """Send message to Telegram"""
    if not TELEGRAM_TOKEN or not TELEGRAM_CHAT_ID:
        print("Telegram not configured, alert skipped")
        return
    url = f"https://api.telegram.org/bot{TELEGRAM_TOKEN}/sendMessage"
    data = {
        "chat_id": TELEGRAM_CHAT_ID,
        "text": message,
        "parse_mode": "HTML"
    }
    try:
        requests.post(url, data=data, timeout=10)
    except Exception as e:
        print(f"Failed to send Telegram: {e}")


def check_relay():
    """Return a list of problems; empty when the relay is healthy."""
    try:
        r = requests.get(f"{RELAY_URL}/health", timeout=10)
    except requests.exceptions.Timeout:
        return ["Timeout"]
    except requests.exceptions.ConnectionError:
        return ["Connection refused"]

    if r.status_code != 200:
        return [f"Unexpected response: {r.status_code}"]

    health = r.json()
    problems = []
    if health.get("status") != "ok":
        missing = ", ".join(health.get("missing") or []) or "not initialized"
        problems.append(f"Degraded ({missing})")

    escalated = (health.get("stats") or {}).get("escalated_conversations", 0)
    if escalated >= ESCALATION_WARN_COUNT:
        problems.append(f"{escalated} conversations waiting for a human")
    return problems


def main():
    problems = check_relay()

    if problems:
        for problem in problems:
            print(f"FAIL: {problem}")
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M")
        message = f"🚨 <b>RELAY ALERT</b> [{timestamp}]\n\n" + "\n".join(f"❌ {p}" for p in problems)
        send_telegram(message)
        sys.exit(1)
    else:
        print("Relay OK")
        sys.exit(0)


if __name__ == "__main__":
    main()
