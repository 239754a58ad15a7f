from __future__ import annotations
import logging
from typing import Dict
from urllib.parse import quote

_log = logging.getLogger(__name__)


class StorageUrlResolver:
    """Turns stored asset paths (``pieces/p1/thumb.jpg``) into fetchable URLs."""

    def __init__(self, storage_url: str | None) -> None:
        self.storage_url = (storage_url or '').rstrip('/')
        self._cache: Dict[str, str] = {}

    def resolve(self, path: str | None) -> str | None:
        if not path or not path.strip():
            return None
        path = path.strip()
        if path.startswith('http://') or path.startswith('https://'):
            return path
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        if not self.storage_url:
            _log.debug("no storage url configured, cannot resolve %s", path)
            return None
        url = f"{self.storage_url}/{quote(path.lstrip('/'), safe='/')}"
        self._cache[path] = url
        return url

    def clear(self) -> None:
        self._cache.clear()
