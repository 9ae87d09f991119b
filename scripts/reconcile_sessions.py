#!/usr/bin/env python3
"""
Clean up session writes that never finished.

Sessions left "pending" by an interrupted ingestion are rolled back;
sessions left "deleting" by an interrupted delete are removed. Run via
cron or after a crash.

Usage:
    python scripts/reconcile_sessions.py
    python scripts/reconcile_sessions.py --older-than 600
"""
import os
import sys
import logging
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import PyMongoError

from core.config import settings
from core.database import DocumentStore
from core.logging import setup_logging
from services.session_ingestion import reconcile_stale

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Roll back or finish interrupted session writes")
    parser.add_argument(
        "--older-than",
        type=int,
        default=settings.INGESTION_STALE_AFTER_S,
        help=f"Age in seconds before a write counts as stale (default: {settings.INGESTION_STALE_AFTER_S})",
    )
    args = parser.parse_args()

    setup_logging()
    store = DocumentStore()
    try:
        report = reconcile_stale(store.connect(), args.older_than)
        logger.info(f"Reconciliation complete: {report}")
    except PyMongoError as e:
        logger.error(f"Reconciliation failed: {e}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
