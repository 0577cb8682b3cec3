"""
Delete referral fraud-log entries past the retention window.

Usage:
  python scripts/purge_fraud_logs.py
"""
from __future__ import annotations

import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.referrals.fraud import purge_expired_fraud_logs  # noqa: E402
from deps.store import get_store  # noqa: E402


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    purged = purge_expired_fraud_logs(get_store())
    print(f"purged={purged}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
