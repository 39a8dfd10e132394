"""
Tests for YouTube channel ingestion.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from redzone.config import Settings
from redzone.core.exceptions import ConfigurationError, ItemValidationError
from redzone.models.domain import ContentKind, SourceDescriptor
from redzone.services.ingestion.video import VideoIngestionModule


def _video(video_id: str, title: str = "Week 5 Rankings", thumbnails=None) -> dict:
    return {
        "kind": "youtube#searchResult",
        "id": {"kind": "youtube#video", "videoId": video_id},
        "snippet": {
            "publishedAt": "2024-10-01T15:00:00Z",
            "channelTitle": "Test Channel",
            "title": title,
            "description": "Who to start &amp; sit this week.",
            "thumbnails": thumbnails if thumbnails is not None else {
                "default": {"url": f"https://i.ytimg.com/vi/{video_id}/default.jpg"},
                "high": {"url": f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"},
            },
        },
    }


class TestVideoModuleConfig:
    """Tests for module construction and configuration checks."""

    def test_requires_api_key(self, video_source):
        settings = Settings(_env_file=None, youtube_api_key=None, log_file=None)

        with pytest.raises(ConfigurationError, match="YOUTUBE_API_KEY"):
            VideoIngestionModule(video_source, AsyncMock(), settings=settings)

    async def test_requires_channel_id(self, settings, mock_client):
        source = SourceDescriptor(id="no-channel", name="No Channel", content_kind=ContentKind.VIDEO)
        module = VideoIngestionModule(source, AsyncMock(), settings=settings, client=mock_client(None))

        outcome = await module.ingest()

        assert outcome.success is False
        assert "Channel ID" in outcome.errors[0]

    def test_max_results_default(self, settings):
        source = SourceDescriptor(
            id="c", name="C", content_kind=ContentKind.VIDEO, parameters={"channel_id": "UC1"},
        )
        module = VideoIngestionModule(source, AsyncMock(), settings=settings)

        assert module.max_results == 10


class TestVideoTransform:
    """Tests for search result transformation."""

    def test_transform(self, video_source, settings):
        module = VideoIngestionModule(video_source, AsyncMock(), settings=settings)

        record = module.transform(_video("abc123"))

        assert record.url == "https://www.youtube.com/watch?v=abc123"
        assert record.description == "Who to start & sit this week."
        assert record.author == "Test Channel"
        assert record.thumbnail_url == "https://i.ytimg.com/vi/abc123/hqdefault.jpg"
        assert record.published_at == "2024-10-01T15:00:00.000Z"
        assert record.content_kind == ContentKind.VIDEO

    def test_thumbnail_prefers_maxres(self, video_source, settings):
        module = VideoIngestionModule(video_source, AsyncMock(), settings=settings)
        thumbnails = {
            "medium": {"url": "medium.jpg"},
            "maxres": {"url": "maxres.jpg"},
            "high": {"url": "high.jpg"},
        }

        record = module.transform(_video("v", thumbnails=thumbnails))

        assert record.thumbnail_url == "maxres.jpg"

    def test_no_thumbnails(self, video_source, settings):
        module = VideoIngestionModule(video_source, AsyncMock(), settings=settings)

        record = module.transform(_video("v", thumbnails={}))

        assert record.thumbnail_url is None

    def test_missing_video_id_dropped(self, video_source, settings):
        module = VideoIngestionModule(video_source, AsyncMock(), settings=settings)
        raw = _video("v")
        raw["id"] = {"kind": "youtube#channel", "channelId": "UC1"}

        result = module.transform(raw)

        assert isinstance(result, ItemValidationError)
        assert "missing required fields" in str(result)


class TestVideoIngestion:
    """End-to-end tests against a mocked YouTube Data API."""

    async def test_single_page(self, video_source, settings, store, mock_client):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"items": [_video("a"), _video("b")]})

        module = VideoIngestionModule(video_source, store, settings=settings, client=mock_client(handler))
        outcome = await module.ingest()

        assert outcome.success is True
        assert outcome.items_processed == 2
        assert outcome.items_saved == 2

        params = requests[0].url.params
        assert requests[0].url.path == "/youtube/v3/search"
        assert params["key"] == "test-youtube-key"
        assert params["channelId"] == "UCtest"
        assert params["order"] == "date"
        assert params["type"] == "video"
        assert params["maxResults"] == "10"

    async def test_follows_page_tokens(self, settings, store, mock_client):
        source = SourceDescriptor(
            id="big-channel",
            name="Big Channel",
            content_kind=ContentKind.VIDEO,
            parameters={"channel_id": "UCbig", "max_results": 60},
        )
        pages = {
            None: {"items": [_video(f"p1-{i}") for i in range(50)], "nextPageToken": "page-2"},
            "page-2": {"items": [_video(f"p2-{i}") for i in range(10)], "nextPageToken": "page-3"},
        }
        seen_tokens = []

        def handler(request: httpx.Request) -> httpx.Response:
            token = request.url.params.get("pageToken")
            seen_tokens.append((token, request.url.params["maxResults"]))
            return httpx.Response(200, json=pages[token])

        module = VideoIngestionModule(source, store, settings=settings, client=mock_client(handler))
        outcome = await module.ingest()

        assert outcome.items_processed == 60
        assert outcome.items_saved == 60
        assert seen_tokens == [(None, "50"), ("page-2", "10")]

    async def test_api_error(self, video_source, settings, mock_client):
        sink = AsyncMock()

        def handler(request):
            return httpx.Response(403, text='{"error": {"message": "quotaExceeded"}}')

        module = VideoIngestionModule(video_source, sink, settings=settings, client=mock_client(handler))
        outcome = await module.ingest()

        assert outcome.success is False
        assert outcome.errors[0].startswith("YouTube API error (403)")
        sink.save_content.assert_not_awaited()

    async def test_invalid_payload(self, video_source, settings, mock_client):
        sink = AsyncMock()

        def handler(request):
            return httpx.Response(200, json={"kind": "youtube#searchListResponse"})

        module = VideoIngestionModule(video_source, sink, settings=settings, client=mock_client(handler))
        outcome = await module.ingest()

        assert outcome.success is False
        assert outcome.errors == ["Invalid response from YouTube API"]
        sink.save_content.assert_not_awaited()
