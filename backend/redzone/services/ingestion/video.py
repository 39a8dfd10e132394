"""
YouTube channel ingestion.

API docs: https://developers.google.com/youtube/v3/docs/search/list
"""
from typing import Any, Optional

import httpx
import structlog

from redzone.config import Settings, get_settings
from redzone.core.exceptions import ConfigurationError, ItemValidationError, SourceError
from redzone.models.domain import CanonicalContentRecord, SourceDescriptor
from redzone.services.ingestion.base import ContentSink, IngestionModule, TransformResult
from redzone.services.ingestion.normalizer import (
    AUTHOR_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    best_thumbnail,
    clean_text,
    derive_id,
    resolve_published,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RESULTS = 10
API_PAGE_SIZE = 50  # search.list hard limit per page
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class VideoIngestionModule(IngestionModule[dict]):
    """
    Ingests the latest uploads of a YouTube channel.

    Requires YOUTUBE_API_KEY and a `channel_id` parameter on the source.
    """

    def __init__(
        self,
        descriptor: SourceDescriptor,
        store: ContentSink,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_settings()
        if not settings.youtube_api_key:
            raise ConfigurationError("YOUTUBE_API_KEY environment variable is required")

        super().__init__(descriptor, store, settings=settings, client=client)
        self.api_key = settings.youtube_api_key
        self.base_url = settings.youtube_api_base_url.rstrip("/")

    @property
    def max_results(self) -> int:
        try:
            value = int(self.descriptor.parameters.get("max_results", DEFAULT_MAX_RESULTS))
        except (TypeError, ValueError):
            value = DEFAULT_MAX_RESULTS
        return max(value, 1)

    def validate_config(self) -> None:
        super().validate_config()

        if not self.descriptor.channel_id:
            raise SourceError("Channel ID is required in source configuration", self.source_id)

    async def fetch_raw(self, client: httpx.AsyncClient) -> list[dict]:
        channel_id = self.descriptor.channel_id
        wanted = self.max_results

        logger.info(
            "Fetching YouTube videos for channel",
            source_id=self.source_id,
            channel_id=channel_id,
            max_results=wanted,
        )

        videos: list[dict] = []
        page_token: Optional[str] = None

        while len(videos) < wanted:
            data = await self._search_page(client, channel_id, min(wanted - len(videos), API_PAGE_SIZE), page_token)
            videos.extend(data["items"])

            page_token = data.get("nextPageToken")
            if not page_token or not data["items"]:
                break

        if not videos:
            logger.warning("No videos found for channel", source_id=self.source_id, channel_id=channel_id)

        return videos[:wanted]

    async def _search_page(
        self,
        client: httpx.AsyncClient,
        channel_id: str,
        page_size: int,
        page_token: Optional[str],
    ) -> dict[str, Any]:
        params = {
            "key": self.api_key,
            "channelId": channel_id,
            "part": "id,snippet",
            "type": "video",
            "order": "date",
            "maxResults": page_size,
        }
        if page_token:
            params["pageToken"] = page_token

        try:
            response = await client.get(f"{self.base_url}/search", params=params)
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to fetch YouTube videos: {e}", self.source_id, e) from e

        if not response.is_success:
            raise SourceError(
                f"YouTube API error ({response.status_code}): {response.text[:500]}",
                self.source_id,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceError("Invalid response from YouTube API", self.source_id, e) from e

        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise SourceError("Invalid response from YouTube API", self.source_id)

        return data

    def transform(self, raw: dict) -> TransformResult:
        video_id = raw.get("id")
        if isinstance(video_id, dict):
            video_id = video_id.get("videoId")
        snippet = raw.get("snippet") or {}
        title = snippet.get("title")

        if not video_id or not title:
            return ItemValidationError(
                "YouTube video missing required fields",
                reference=str(video_id or title or "unknown"),
            )

        url = WATCH_URL.format(video_id=video_id)
        published_at = resolve_published(snippet.get("publishedAt"), self.source_id)

        return CanonicalContentRecord(
            id=derive_id(self.source_id, url, published_at),
            title=clean_text(title, TITLE_MAX_LENGTH),
            description=clean_text(snippet.get("description"), DESCRIPTION_MAX_LENGTH) or None,
            thumbnail_url=best_thumbnail(snippet.get("thumbnails")),
            source_name=self.descriptor.name,
            content_kind=self.descriptor.content_kind,
            published_at=published_at,
            url=url,
            author=clean_text(snippet.get("channelTitle"), AUTHOR_MAX_LENGTH) or None,
            ingestion_source=self.source_id,
        )
