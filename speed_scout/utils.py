# File: speed_scout/utils.py
"""speed_scout.utils: boundary validation for URLs, content hashes and share ids."""

from __future__ import annotations

import re
from typing import Any, Collection, List, Mapping, Sequence
from urllib.parse import urlparse

from speed_scout.errors import InvalidInput
from speed_scout.logger import get_logger

__all__: Sequence[str] = (
    "REPORT_ID_RE",
    "SHARE_ID_RE",
    "extract_domain",
    "is_valid_url",
    "validate_report_id",
    "validate_share_id",
    "validate_partition_key",
    "validate_share_request",
    "remove_duplicates",
)

logger = get_logger("utils")

REPORT_ID_RE = re.compile(r"^[a-f0-9]{16}$")
SHARE_ID_RE = re.compile(r"^[a-f0-9]{12}$")
# bare hostname: letters, digits, dots, dashes (IDNA already applied by urlparse)
_HOSTNAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9.-]{0,251}[a-z0-9])?$")


def is_valid_url(url: Any) -> bool:
    """True for an absolute http(s) URL with a hostname."""
    if not isinstance(url, str) or not url:
        return False
    try:
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.hostname)
    except ValueError:
        return False


def extract_domain(url: Any) -> str:
    """Return the lowercase hostname of *url*, the partition key of its reports.

    Raises InvalidInput for anything that is not an absolute http(s) URL.
    """
    if not is_valid_url(url):
        raise InvalidInput("invalid url format")
    hostname = urlparse(url).hostname or ""
    return validate_partition_key(hostname)


def validate_report_id(report_id: Any) -> str:
    if not report_id or not isinstance(report_id, str):
        raise InvalidInput("reportId is required")
    if not REPORT_ID_RE.match(report_id):
        raise InvalidInput("reportId must be 16-char hex")
    return report_id


def validate_share_id(share_id: Any) -> str:
    if not share_id or not isinstance(share_id, str):
        raise InvalidInput("id parameter is required")
    if not SHARE_ID_RE.match(share_id):
        raise InvalidInput("id must be 12-char hex")
    return share_id


def validate_partition_key(partition_key: Any) -> str:
    if not isinstance(partition_key, str) or not _HOSTNAME_RE.match(partition_key):
        raise InvalidInput("partition key must be a hostname")
    if ".." in partition_key:
        raise InvalidInput("partition key must be a hostname")
    return partition_key


def validate_share_request(body: Any) -> Mapping[str, Any]:
    """Check the JSON body of a share request: a mapping with a non-empty urls list."""
    if not isinstance(body, Mapping):
        raise InvalidInput("request body must be a JSON object")
    urls = body.get("urls")
    if not isinstance(urls, list):
        raise InvalidInput("urls array is required")
    if not urls:
        raise InvalidInput("urls cannot be empty")
    if not all(isinstance(u, str) for u in urls):
        raise InvalidInput("urls must be strings")
    report_ids = body.get("reportIds")
    if report_ids is not None and not isinstance(report_ids, Mapping):
        raise InvalidInput("reportIds must be an object")
    return body


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Remove duplicate URLs, keeping the first occurrence order."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate URLs", removed)
    return unique
