"""
Cron job script: trigger the billing conversion sweep.

Run hourly, one instance at a time (e.g. a cron entry with flock). The sweep
window matches the cadence, so a missed hour is picked up on the next run.

Usage:
    python scripts/check_expired_trials.py [--url https://api.example.com]

Environment variables:
    CRON_SECRET  - shared secret expected by /api/trial/auto-billing
    APP_URL      - base URL of the API (default http://localhost:8000)
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone

import httpx

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("check_expired_trials")


def trigger_sweep(base_url: str, secret: str, timeout: float) -> dict:
    response = httpx.post(
        f"{base_url.rstrip('/')}/api/trial/auto-billing",
        headers={"Authorization": f"Bearer {secret}"},
        timeout=timeout,
    )
    response.raise_for_status()
    return response.json()


def main() -> int:
    parser = argparse.ArgumentParser(description="Trigger auto-billing for expired trials")
    parser.add_argument("--url", default=os.getenv("APP_URL", "http://localhost:8000"))
    parser.add_argument("--timeout", type=float, default=300.0)
    args = parser.parse_args()

    secret = os.getenv("CRON_SECRET")
    if not secret:
        logger.error("CRON_SECRET environment variable is required")
        return 1

    logger.info(f"[{datetime.now(timezone.utc).isoformat()}] Checking for expired trials...")
    try:
        result = trigger_sweep(args.url, secret, args.timeout)
    except httpx.HTTPStatusError as e:
        logger.error(f"Sweep request failed with {e.response.status_code}: {e.response.text}")
        return 1
    except httpx.HTTPError as e:
        logger.error(f"Sweep request failed: {e}")
        return 1

    logger.info(result.get("message", ""))
    for index, item in enumerate(result.get("results", []), start=1):
        if item.get("status") == "success":
            logger.info(f"  {index}. {item.get('email')}: subscription {item.get('subscription_id')}")
        else:
            logger.warning(f"  {index}. {item.get('email')}: error - {item.get('detail')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
