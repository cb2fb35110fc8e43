"""
Job Descriptor - Validated, immutable record of one clip request.

Turns the raw request fields (source URL, optional start/end offsets) into a
JobDescriptor with a unique job id and per-job file paths. Start/end values
are only screened for characters that could leak into the external tool
arguments; their format and ordering are left to the trim stage.
"""

import logging
import re
import time
import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import urlsplit

from app.services.errors import InvalidInputError

logger = logging.getLogger(__name__)

# Characters a shell (or a sloppy downstream caller) would interpret
SHELL_METACHARACTERS = set(";&|$`<>(){}[]*?!~'\"\\#")

ALLOWED_URL_SCHEMES = ("http", "https")

# Published artifacts are named <CLIP_PREFIX><job_id>.<ext>
CLIP_PREFIX = "clipped_"


@dataclass(frozen=True)
class JobDescriptor:
    """Immutable description of a single clip job."""

    job_id: str
    source_url: str
    range_start: Optional[str]
    range_end: Optional[str]
    download_path: Path
    output_path: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def output_filename(self) -> str:
        return self.output_path.name

    @property
    def has_range(self) -> bool:
        return self.range_start is not None or self.range_end is not None


def generate_job_id() -> str:
    """
    Generate a unique job id.

    Millisecond timestamp first so ids sort by creation time, then a random
    suffix so two requests in the same millisecond never collide.
    """
    return f"{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:8]}"


def normalize_source_url(url: str, host_aliases: Mapping[str, str]) -> str:
    """
    Rewrite a known alias host to its canonical form.

    Only the first matching alias is applied and only its first occurrence is
    replaced, e.g. https://x.com/u/status/1 -> https://twitter.com/u/status/1.
    This changes the fetch target, so every rewrite is logged.

    The alias must be the URL's host (or a subdomain of it); a path that
    merely contains the alias text does not trigger a rewrite.
    """
    hostname = (urlsplit(url).hostname or "").lower()
    for alias, canonical in host_aliases.items():
        alias = alias.lower()
        if alias and (hostname == alias or hostname.endswith(f".{alias}")):
            pattern = r"(?<=[/@.])" + re.escape(alias)
            normalized = re.sub(pattern, canonical, url, count=1, flags=re.IGNORECASE)
            logger.info(f"Rewrote source host alias {alias} -> {canonical}: {normalized}")
            return normalized
    return url


def _has_control_chars(value: str) -> bool:
    return any(unicodedata.category(ch) == "Cc" for ch in value)


def _validate_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidInputError("Missing required fields")

    if _has_control_chars(url) or re.search(r"\s", url):
        raise InvalidInputError("Source URL contains invalid characters")

    # A leading dash would be read as an option by the fetch tool
    if url.startswith("-"):
        raise InvalidInputError("Source URL is not a valid URL")

    parts = urlsplit(url)
    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES or not parts.netloc:
        raise InvalidInputError("Source URL must be an absolute http(s) URL")

    return url


def _validate_offset(name: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    if _has_control_chars(value) or re.search(r"\s", value):
        raise InvalidInputError(f"Invalid {name} offset")

    if any(ch in SHELL_METACHARACTERS for ch in value):
        raise InvalidInputError(f"Invalid {name} offset")

    return value


def build_job_descriptor(
    url: Optional[str],
    start: Optional[str],
    end: Optional[str],
    directory: Path,
    host_aliases: Mapping[str, str],
    extension: str = "mp4",
    job_id: Optional[str] = None,
) -> JobDescriptor:
    """
    Validate raw request fields and build a JobDescriptor.

    Args:
        url: Source post URL as received
        start: Optional start offset as received
        end: Optional end offset as received
        directory: Directory holding the job's files
        host_aliases: Alias host -> canonical host mapping
        extension: Container extension for the derived file names
        job_id: Explicit job id (generated when omitted)

    Returns:
        JobDescriptor with normalized URL and derived paths

    Raises:
        InvalidInputError: If the URL is missing or any field is unsafe
    """
    source_url = normalize_source_url(_validate_url(url), host_aliases)
    range_start = _validate_offset("start", start)
    range_end = _validate_offset("end", end)

    job_id = job_id or generate_job_id()
    directory = Path(directory)

    return JobDescriptor(
        job_id=job_id,
        source_url=source_url,
        range_start=range_start,
        range_end=range_end,
        download_path=directory / f"{job_id}.{extension}",
        output_path=directory / f"{CLIP_PREFIX}{job_id}.{extension}",
    )
