from __future__ import annotations

"""Error taxonomy shared by the store layer and the services built on it.

Only the gallery loader lets these escape to its caller. The favorites
manager and the analytics tracker catch them at their own boundary.
"""


class GalleryClientError(Exception):
    """Base class for every error raised by gallery_client."""


class NotFound(GalleryClientError):
    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f'document not found: {path}')


class TransientIOError(GalleryClientError):
    """Network or store failure. Never retried automatically."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class MalformedData(GalleryClientError):
    def __init__(self, entity: str, entity_id: str | None, reason: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f'malformed {entity} id={entity_id}: {reason}')


class AuthenticationError(GalleryClientError):
    pass
