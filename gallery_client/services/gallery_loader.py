from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Sequence, Tuple

from pydantic import ValidationError

from gallery_client.core.errors import GalleryClientError, MalformedData, NotFound, TransientIOError
from gallery_client.models.gallery import Artist, Collection, GalleryGraph, Piece
from gallery_client.store import paths
from gallery_client.store.base import DOCUMENT_ID, MAX_IN_VALUES, DocumentSnapshot, DocumentStore, FieldFilter, chunked
from gallery_client.utils.string_utils import contains_casefold, last_name_token, normalize_null_strings

_log = logging.getLogger(__name__)


def normalize_artist_associations(artists_field: Mapping[str, Any] | None) -> Tuple[List[str], List[str]]:
    """Flatten the collection's artist -> pieces association.

    Two shapes exist in stored collections: ``{artist_id: [piece_id, ...]}``
    and ``{artist_id: {"pieces": [piece_id, ...]}}``. Both collapse to one
    ordered list of artist ids and one de-duplicated, first-seen ordered list
    of piece ids.
    """
    artist_ids: List[str] = []
    piece_ids: Dict[str, None] = {}
    for artist_id, entry in (artists_field or {}).items():
        artist_ids.append(str(artist_id))
        if isinstance(entry, Mapping):
            entry = entry.get('pieces')
        if not isinstance(entry, (list, tuple)):
            continue
        for piece_id in entry:
            if isinstance(piece_id, str) and piece_id:
                piece_ids.setdefault(piece_id, None)
    return artist_ids, list(piece_ids)


def sort_artists(artists: Iterable[Artist]) -> List[Artist]:
    # list.sort is stable: equal last names keep fetch order
    return sorted(artists, key=lambda a: last_name_token(a.display_name).casefold())


def build_artist_piece_map(artists: Sequence[Artist], pieces: Sequence[Piece]) -> Dict[str, tuple[Piece, ...]]:
    buckets: Dict[str, List[Piece]] = {artist.artist_id: [] for artist in artists}
    for piece in pieces:
        bucket = buckets.get(piece.artist_id)
        if bucket is None:
            _log.debug("piece %s references artist %s outside the loaded set", piece.id, piece.artist_id)
            continue
        bucket.append(piece)
    return {
        artist_id: tuple(sorted(bucket, key=lambda p: p.title.casefold()))
        for artist_id, bucket in buckets.items()
    }


def search_pieces(pieces: Sequence[Piece], artists: Sequence[Artist], query: str) -> Sequence[Piece]:
    """Case-insensitive substring match on piece title or owning artist name.

    A blank query returns ``pieces`` itself, unchanged.
    """
    term = (query or '').strip()
    if not term:
        return pieces
    artist_names = {artist.artist_id: artist.display_name for artist in artists}
    return [
        piece for piece in pieces
        if contains_casefold(piece.title, term) or contains_casefold(artist_names.get(piece.artist_id), term)
    ]


def _parse_artist(snapshot: DocumentSnapshot) -> Artist:
    try:
        return Artist.model_validate({**normalize_null_strings(snapshot.data or {}), 'artistId': snapshot.id})
    except ValidationError as exc:
        raise MalformedData('artist', snapshot.id, str(exc.errors()[:1])) from exc


def _parse_piece(snapshot: DocumentSnapshot) -> Piece:
    try:
        return Piece.model_validate({**normalize_null_strings(snapshot.data or {}), 'id': snapshot.id})
    except ValidationError as exc:
        raise MalformedData('piece', snapshot.id, str(exc.errors()[:1])) from exc


class GalleryLoader:
    """One-shot assembly of a collection's artist/piece graph.

    The load is atomic for the caller: either a complete ``GalleryGraph`` is
    returned or ``NotFound``/``TransientIOError`` is raised. Individual artist
    or piece documents that fail validation are logged and left out.
    """

    def __init__(self, store: DocumentStore, *, batch_limit: int = MAX_IN_VALUES) -> None:
        if not 1 <= batch_limit <= MAX_IN_VALUES:
            raise ValueError(f"batch_limit must be between 1 and {MAX_IN_VALUES}")
        self.store = store
        self.batch_limit = batch_limit

    async def load(self, gallery_id: str, collection_id: str) -> GalleryGraph:
        _log.info("loading collection %s for gallery %s", collection_id, gallery_id)
        try:
            collection = await self._load_collection(gallery_id, collection_id)
            artist_ids, piece_ids = normalize_artist_associations(collection.artists)
            _log.info("collection %s references %d artists and %d pieces", collection_id, len(artist_ids), len(piece_ids))

            artist_snaps, piece_snaps = await self._gather_all(
                self._fetch_by_ids(paths.artists_path(gallery_id), artist_ids),
                self._fetch_by_ids(paths.pieces_path(gallery_id), piece_ids, FieldFilter('active', '==', True)),
            )
        except GalleryClientError as exc:
            _log.error("failed to load collection %s: %s", collection_id, exc)
            raise

        artists = sort_artists(self._parse_all(artist_snaps, _parse_artist))
        pieces = [p for p in self._parse_all(piece_snaps, _parse_piece) if p.active]
        graph = GalleryGraph(
            gallery_id=gallery_id,
            collection=collection,
            artists=tuple(artists),
            pieces=tuple(pieces),
            artist_piece_map=build_artist_piece_map(artists, pieces),
        )
        _log.info("collection %s loaded artists=%d pieces=%d", collection_id, len(artists), len(pieces))
        return graph

    def pieces_for_artist(self, graph: GalleryGraph, artist_id: str) -> List[Piece]:
        return graph.pieces_for_artist(artist_id)

    search_pieces = staticmethod(search_pieces)

    # --- internals ---------------------------------------------------
    async def _load_collection(self, gallery_id: str, collection_id: str) -> Collection:
        path = paths.collection_doc(gallery_id, collection_id)
        snapshot = await self._guard(self.store.get(path), f"read {path}")
        if not snapshot.exists:
            raise NotFound(path, f"collection {collection_id} not found")
        try:
            return Collection.model_validate({**(snapshot.data or {}), 'collectionId': snapshot.id})
        except ValidationError as exc:
            raise MalformedData('collection', collection_id, str(exc.errors()[:1])) from exc

    async def _fetch_by_ids(self, collection_path: str, ids: Sequence[str], *extra: FieldFilter) -> List[DocumentSnapshot]:
        if not ids:
            return []
        chunks = chunked(ids, self.batch_limit)
        results = await self._gather_all(*[
            self._guard(
                self.store.query(collection_path, [FieldFilter(DOCUMENT_ID, 'in', tuple(chunk)), *extra]),
                f"query {collection_path} ({len(chunk)} ids)",
            )
            for chunk in chunks
        ])
        return [snap for batch in results for snap in batch]

    @staticmethod
    async def _guard(awaitable: Awaitable[Any], label: str) -> Any:
        try:
            return await awaitable
        except GalleryClientError:
            raise
        except Exception as exc:
            raise TransientIOError(f"{label} failed: {exc}", exc) from exc

    @staticmethod
    async def _gather_all(*awaitables: Awaitable[Any]) -> List[Any]:
        """Run concurrently; on the first failure cancel the rest and re-raise."""
        tasks = [asyncio.ensure_future(a) for a in awaitables]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    @staticmethod
    def _parse_all(snapshots: Iterable[DocumentSnapshot], parser) -> List[Any]:
        parsed: List[Any] = []
        for snapshot in snapshots:
            try:
                parsed.append(parser(snapshot))
            except MalformedData as exc:
                _log.warning("skipping %s", exc)
        return parsed
