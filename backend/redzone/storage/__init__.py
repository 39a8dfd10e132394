from redzone.storage.content_store import ContentPage, ContentStore

__all__ = ["ContentPage", "ContentStore"]
