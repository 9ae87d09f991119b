"""
Media access remediation.

Older uploads were created without public read access. This pass walks a
folder on the media host and forces public access on every resource. It
is safe to run repeatedly.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from core.exceptions import UploadError
from services.media_uploader import MediaUploader

logger = logging.getLogger(__name__)


@dataclass
class AccessFixReport:
    prefix: str
    resource_type: str
    total: int = 0
    updated: int = 0
    failed: int = 0
    failures: List[str] = field(default_factory=list)


def make_folder_public(uploader: MediaUploader, prefix: str, resource_type: str) -> AccessFixReport:
    """Force public access on every resource under ``prefix``; never stops early."""
    report = AccessFixReport(prefix=prefix, resource_type=resource_type)
    resources = uploader.list_resources(prefix, resource_type=resource_type)
    report.total = len(resources)
    logger.info(f"Found {report.total} {resource_type} resources under {prefix}")

    for resource in resources:
        public_id = resource.get("public_id")
        try:
            uploader.make_public(public_id, resource_type=resource_type)
            report.updated += 1
        except UploadError as e:
            report.failed += 1
            report.failures.append(public_id)
            logger.error(f"Failed to update {public_id}: {e}")

    logger.info(
        f"Access fix for {prefix}: {report.updated} updated, {report.failed} failed of {report.total}"
    )
    return report
