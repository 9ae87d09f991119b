#!/usr/bin/env python3
"""
Force public access on every stored report, screenshot and video.

Usage:
    python scripts/fix_media_access.py
    python scripts/fix_media_access.py --only reports

Environment Variables:
    CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET
"""
import os
import sys
import logging
import argparse
from typing import List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import UploadError
from core.logging import setup_logging
from services.media_access import AccessFixReport, make_folder_public
from services.media_uploader import MediaUploader

logger = logging.getLogger(__name__)

# folder below the root -> resource type on the media host
TARGETS = {
    "reports": "raw",
    "screenshots": "image",
    "videos": "video",
}


def fix_all(uploader: MediaUploader, only: Optional[List[str]] = None) -> List[AccessFixReport]:
    reports = []
    for folder, resource_type in TARGETS.items():
        if only and folder not in only:
            continue
        reports.append(make_folder_public(uploader, f"{uploader.root_folder}/{folder}", resource_type))
    return reports


def main():
    parser = argparse.ArgumentParser(description="Make stored media publicly readable")
    parser.add_argument("--only", nargs="+", choices=sorted(TARGETS), help="Limit to these folders")
    args = parser.parse_args()

    setup_logging()
    try:
        reports = fix_all(MediaUploader(), args.only)
    except UploadError as e:
        logger.error(f"Media access fix failed: {e}")
        sys.exit(1)

    for report in reports:
        logger.info(f"{report.prefix}: total={report.total} updated={report.updated} failed={report.failed}")
    if any(r.failed for r in reports):
        sys.exit(2)


if __name__ == "__main__":
    main()
