#!/usr/bin/env python3
"""
Rewrite PDF report URLs that were stored under the image delivery path.

PDFs are served from ``/raw/upload/``; early sessions recorded them under
``/image/upload/``.

Usage:
    python scripts/migrate_pdf_urls.py
"""
import os
import sys
import logging
import argparse
from typing import Dict

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.database import Database
from pymongo.errors import PyMongoError

from core.database import WORKOUT_SESSIONS, DocumentStore
from core.logging import setup_logging

logger = logging.getLogger(__name__)

WRONG_PATH = "/image/upload/"
RAW_PATH = "/raw/upload/"


def fix_pdf_urls(db: Database) -> Dict[str, int]:
    found = list(db[WORKOUT_SESSIONS].find({"pdfUrl": {"$regex": r"/image/upload/.*\.pdf"}}))
    updated = 0
    for workout in found:
        new_url = workout["pdfUrl"].replace(WRONG_PATH, RAW_PATH, 1)
        result = db[WORKOUT_SESSIONS].update_one({"_id": workout["_id"]}, {"$set": {"pdfUrl": new_url}})
        if result.modified_count:
            updated += 1
        else:
            logger.warning(f"PDF URL not updated for session {workout['_id']}")
    logger.info(f"PDF URLs: {len(found)} found, {updated} updated")
    return {"found": len(found), "updated": updated}


def main():
    argparse.ArgumentParser(description="Move PDF report URLs to the raw delivery path").parse_args()

    setup_logging()
    store = DocumentStore()
    try:
        fix_pdf_urls(store.connect())
    except PyMongoError as e:
        logger.error(f"Migration error: {e}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
