"""
Content normalization helpers.

Pure functions shared by every ingestion module: text cleanup, date
handling, thumbnail selection, identity derivation and record validation.
"""

import hashlib
import html
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union

import structlog

from redzone.core.exceptions import ItemValidationError
from redzone.models.domain import CanonicalContentRecord, SourceDescriptor

logger = structlog.get_logger(__name__)

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 500
AUTHOR_MAX_LENGTH = 100
ELLIPSIS = "..."

# Best first. Not every video has every variant.
THUMBNAIL_QUALITY_LADDER = ("maxres", "high", "medium", "standard", "default")

_TAG_RE = re.compile(r"<[^>]+>")
_IMG_SRC_RE = re.compile(r"""<img[^>]+src\s*=\s*["']([^"'>]+)["']""", re.IGNORECASE)
_ISO_CANONICAL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def clean_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """Strip HTML tags, decode entities, collapse whitespace and truncate."""
    if not text:
        return ""

    clean = _TAG_RE.sub(" ", text)
    clean = html.unescape(clean)
    clean = " ".join(clean.split())

    if max_length and len(clean) > max_length:
        clean = clean[: max_length - len(ELLIPSIS)].rstrip() + ELLIPSIS

    return clean


def extract_first_image(markup: Optional[str]) -> Optional[str]:
    """Return the src of the first <img> tag in an HTML fragment."""
    if not markup:
        return None
    match = _IMG_SRC_RE.search(markup)
    return html.unescape(match.group(1)) if match else None


def best_thumbnail(thumbnails: Optional[dict]) -> Optional[str]:
    """Pick the best thumbnail URL from a {quality: {"url": ...}} mapping."""
    if not thumbnails:
        return None
    for quality in THUMBNAIL_QUALITY_LADDER:
        variant = thumbnails.get(quality)
        if isinstance(variant, dict) and variant.get("url"):
            return variant["url"]
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse RFC 822 (RSS) or ISO-8601 (Atom, APIs) dates.

    Returns an aware UTC datetime, or None when the value is unparseable.
    Naive values are taken to be UTC.
    """
    if not value or not value.strip():
        return None
    value = value.strip()

    parsed: Optional[datetime] = None
    try:
        parsed = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError):
        parsed = None

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision, e.g. 2024-01-15T09:00:00.000Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return f"{dt.year:04d}-" + dt.strftime("%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def is_canonical_iso(value: Optional[str]) -> bool:
    return bool(value) and bool(_ISO_CANONICAL_RE.match(value))


def coerce_iso(value: Optional[str]) -> Optional[str]:
    """Rewrite any parseable date string into the canonical ISO form."""
    if is_canonical_iso(value):
        return value
    parsed = parse_date(value)
    return to_iso(parsed) if parsed else None


def resolve_published(value: Optional[str], source_id: str) -> str:
    """Canonical publish time for an item, falling back to now."""
    parsed = parse_date(value)
    if parsed is None:
        if value:
            logger.warning(
                "Invalid publish date, using current time",
                source_id=source_id,
                original_date=value,
            )
        parsed = utcnow()
    return to_iso(parsed)


def derive_id(source_id: str, url: str, published_at: Optional[str] = None) -> str:
    """
    Stable content id: source id, URL hash and publish time in epoch millis.

    Re-fetching the same item with the same publish date yields the same id.
    """
    url_hash = hashlib.md5(url.encode("utf-8")).hexdigest()[:16]
    published = parse_date(published_at) if published_at else None
    moment = published or utcnow()
    millis = int(moment.timestamp() * 1000)
    return f"{source_id}-{url_hash}-{millis}"


def validate_record(
    record: CanonicalContentRecord,
    descriptor: SourceDescriptor,
) -> Union[CanonicalContentRecord, ItemValidationError]:
    """
    Final check before persistence.

    The descriptor's name and kind always win over what the transform
    produced.
    """
    if not record.id or not record.title or not record.url:
        return ItemValidationError(
            "Missing required fields: id, title, or url",
            reference=record.url or record.id or None,
        )

    published_at = coerce_iso(record.published_at)
    if published_at is None:
        return ItemValidationError("Invalid publishedAt date format", reference=record.url)

    return record.model_copy(
        update={
            "source_name": descriptor.name,
            "content_kind": descriptor.content_kind,
            "published_at": published_at,
            "ingestion_source": descriptor.id,
        }
    )
