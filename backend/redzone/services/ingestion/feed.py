"""
RSS/Atom feed ingestion.

Handles fetching and parsing syndication feeds (RSS 2.0, RSS 1.0/RDF and
Atom) for article and podcast sources.
"""

from dataclasses import dataclass
from typing import Optional
from xml.etree import ElementTree

import httpx
import structlog

from redzone.core.exceptions import ItemValidationError, SourceError
from redzone.models.domain import CanonicalContentRecord
from redzone.services.ingestion.base import IngestionModule, TransformResult
from redzone.services.ingestion.normalizer import (
    AUTHOR_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    clean_text,
    derive_id,
    extract_first_image,
    resolve_published,
)

logger = structlog.get_logger(__name__)

# XML namespaces
ATOM_NS = "{http://www.w3.org/2005/Atom}"
RSS1_NS = "{http://purl.org/rss/1.0/}"
DC_NS = "{http://purl.org/dc/elements/1.1/}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"
MEDIA_NS = "{http://search.yahoo.com/mrss/}"


@dataclass
class FeedItem:
    """One <item> or <entry> as found in the feed, before normalization."""
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    published: Optional[str] = None
    author: Optional[str] = None
    enclosure_url: Optional[str] = None
    enclosure_type: Optional[str] = None
    media_image: Optional[str] = None


def _text(element: ElementTree.Element, path: str) -> Optional[str]:
    value = element.findtext(path)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _media_image(element: ElementTree.Element) -> Optional[str]:
    """Image from Media RSS thumbnail/content elements, if any."""
    thumb = element.find(f".//{MEDIA_NS}thumbnail")
    if thumb is not None and thumb.get("url"):
        return thumb.get("url")

    for media in element.iter(f"{MEDIA_NS}content"):
        url = media.get("url")
        if not url:
            continue
        if media.get("medium") == "image" or (media.get("type") or "").startswith("image/"):
            return url
    return None


def parse_feed(xml_content: str, source_id: str) -> list[FeedItem]:
    """
    Parse a feed document into FeedItems.

    Raises SourceError if the document is not XML or not a known feed format.
    """
    try:
        root = ElementTree.fromstring(xml_content)
    except ElementTree.ParseError as e:
        raise SourceError(f"Malformed feed: {e}", source_id, e) from e

    if root.tag == f"{ATOM_NS}feed":
        return [_parse_atom_entry(entry) for entry in root.findall(f"{ATOM_NS}entry")]

    if root.tag == "rss" or root.tag.endswith("RDF"):
        items = root.findall(".//item") + root.findall(f".//{RSS1_NS}item")
        return [_parse_rss_item(item) for item in items]

    raise SourceError(f"Unrecognized feed format (root element <{root.tag}>)", source_id)


def _parse_rss_item(item: ElementTree.Element) -> FeedItem:
    """Parse a single RSS 2.0 or RSS 1.0 item."""
    enclosure = item.find("enclosure")

    return FeedItem(
        title=_text(item, "title") or _text(item, f"{RSS1_NS}title"),
        link=_text(item, "link") or _text(item, f"{RSS1_NS}link"),
        description=_text(item, "description") or _text(item, f"{RSS1_NS}description"),
        content=_text(item, f"{CONTENT_NS}encoded"),
        published=_text(item, "pubDate") or _text(item, f"{DC_NS}date"),
        author=_text(item, f"{DC_NS}creator") or _text(item, "author"),
        enclosure_url=enclosure.get("url") if enclosure is not None else None,
        enclosure_type=enclosure.get("type") if enclosure is not None else None,
        media_image=_media_image(item),
    )


def _parse_atom_entry(entry: ElementTree.Element) -> FeedItem:
    """Parse a single Atom entry."""
    link = None
    enclosure_url = None
    enclosure_type = None
    for link_elem in entry.findall(f"{ATOM_NS}link"):
        rel = link_elem.get("rel", "alternate")
        if rel == "alternate" and link is None:
            link = link_elem.get("href")
        elif rel == "enclosure" and enclosure_url is None:
            enclosure_url = link_elem.get("href")
            enclosure_type = link_elem.get("type")

    authors = [
        name for name in (_text(a, f"{ATOM_NS}name") for a in entry.findall(f"{ATOM_NS}author"))
        if name
    ]

    return FeedItem(
        title=_text(entry, f"{ATOM_NS}title"),
        link=link or _text(entry, f"{ATOM_NS}id"),
        description=_text(entry, f"{ATOM_NS}summary"),
        content=_text(entry, f"{ATOM_NS}content"),
        published=_text(entry, f"{ATOM_NS}published") or _text(entry, f"{ATOM_NS}updated"),
        author=", ".join(authors) or None,
        enclosure_url=enclosure_url,
        enclosure_type=enclosure_type,
        media_image=_media_image(entry),
    )


class FeedIngestionModule(IngestionModule[FeedItem]):
    """
    Ingests a syndication feed.

    Used for article and podcast sources; the descriptor's endpoint is the
    feed URL.
    """

    def validate_config(self) -> None:
        super().validate_config()

        endpoint = self.descriptor.endpoint
        if not endpoint or not endpoint.startswith(("http://", "https://")):
            raise SourceError("RSS URL is required in source configuration", self.source_id)

    async def fetch_raw(self, client: httpx.AsyncClient) -> list[FeedItem]:
        url = self.descriptor.endpoint
        logger.info("Fetching RSS feed", source_id=self.source_id, url=url)

        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to fetch RSS feed: {e}", self.source_id, e) from e

        items = parse_feed(response.text, self.source_id)

        if not items:
            logger.warning("No items found in RSS feed", source_id=self.source_id, url=url)
        else:
            logger.info("Found items in RSS feed", source_id=self.source_id, count=len(items))

        return items

    def transform(self, raw: FeedItem) -> TransformResult:
        if not raw.link or not raw.title:
            return ItemValidationError(
                "RSS item missing required fields",
                reference=raw.link or raw.title,
            )

        markup = raw.description or raw.content
        description = clean_text(markup, DESCRIPTION_MAX_LENGTH) or None
        published_at = resolve_published(raw.published, self.source_id)

        return CanonicalContentRecord(
            id=derive_id(self.source_id, raw.link, published_at),
            title=clean_text(raw.title, TITLE_MAX_LENGTH),
            description=description,
            thumbnail_url=self._thumbnail(raw),
            source_name=self.descriptor.name,
            content_kind=self.descriptor.content_kind,
            published_at=published_at,
            url=raw.link,
            author=clean_text(raw.author, AUTHOR_MAX_LENGTH) or None,
            ingestion_source=self.source_id,
        )

    @staticmethod
    def _thumbnail(raw: FeedItem) -> Optional[str]:
        """Enclosure image first, then Media RSS, then the first inline <img>."""
        if raw.enclosure_url and (raw.enclosure_type or "").startswith("image/"):
            return raw.enclosure_url
        if raw.media_image:
            return raw.media_image
        return extract_first_image(raw.description) or extract_first_image(raw.content)
