from __future__ import annotations
import logging
from typing import List, Sequence

from gallery_client.core.errors import GalleryClientError
from gallery_client.models.gallery import Artist, GalleryGraph, Piece
from gallery_client.services.favorites import FavoritesManager
from gallery_client.services.gallery_loader import GalleryLoader

_log = logging.getLogger(__name__)


class GalleryState:
    """Loaded graph plus the visitor's current selection.

    Selection changes follow a few exclusivity rules: picking an artist
    clears the piece selection and the search box; searching leaves the
    artist and favorites views; opening favorites clears artist and search.
    """

    def __init__(self, loader: GalleryLoader, favorites: FavoritesManager) -> None:
        self.loader = loader
        self.favorites = favorites
        self.reset()

    def reset(self) -> None:
        self.graph: GalleryGraph | None = None
        self.favorited_pieces: List[Piece] = []
        self.selected_artist_id: str | None = None
        self.selected_piece_id: str | None = None
        self.search_query = ''
        self.showing_favorites = False
        self.is_loading = False
        self.is_loading_favorites = False
        self.error: str | None = None

    # --- graph views -------------------------------------------------
    @property
    def artists(self) -> Sequence[Artist]:
        return self.graph.artists if self.graph else ()

    @property
    def pieces(self) -> Sequence[Piece]:
        return self.graph.pieces if self.graph else ()

    # --- loading -----------------------------------------------------
    async def load_gallery(self, gallery_id: str, collection_id: str) -> bool:
        self.is_loading = True
        self.error = None
        try:
            self.graph = await self.loader.load(gallery_id, collection_id)
        except GalleryClientError as exc:
            self.error = str(exc) or 'Failed to load gallery'
            return False
        finally:
            self.is_loading = False
        return True

    async def load_favorites(self, user_id: str) -> None:
        self.is_loading_favorites = True
        try:
            ids = set(await self.favorites.get_all_favorites(user_id))
        finally:
            self.is_loading_favorites = False
        self.favorited_pieces = [piece for piece in self.pieces if piece.id in ids]
        _log.info("loaded %d favorites for user %s", len(self.favorited_pieces), user_id)

    def mark_favorite(self, piece_id: str, is_favorite: bool) -> None:
        present = any(p.id == piece_id for p in self.favorited_pieces)
        if is_favorite and not present:
            piece = self.graph.get_piece(piece_id) if self.graph else None
            if piece is not None:
                self.favorited_pieces.append(piece)
        elif not is_favorite and present:
            self.favorited_pieces = [p for p in self.favorited_pieces if p.id != piece_id]

    # --- selection ---------------------------------------------------
    def select_artist(self, artist_id: str | None) -> None:
        self.selected_artist_id = artist_id
        self.selected_piece_id = None
        self.search_query = ''

    def select_piece(self, piece_id: str | None) -> None:
        self.selected_piece_id = piece_id

    def set_search_query(self, query: str) -> None:
        self.search_query = query
        self.selected_artist_id = None
        self.showing_favorites = False

    def set_showing_favorites(self, showing: bool) -> None:
        self.showing_favorites = showing
        self.selected_artist_id = None
        self.search_query = ''

    def clear_error(self) -> None:
        self.error = None

    # --- derived -----------------------------------------------------
    def pieces_for_artist(self, artist_id: str) -> List[Piece]:
        return self.loader.pieces_for_artist(self.graph, artist_id) if self.graph else []

    def current_piece(self) -> Piece | None:
        if not self.selected_piece_id or self.graph is None:
            return None
        return self.graph.get_piece(self.selected_piece_id)

    def current_artist(self) -> Artist | None:
        if not self.selected_artist_id or self.graph is None:
            return None
        return self.graph.get_artist(self.selected_artist_id)

    def filtered_pieces(self) -> Sequence[Piece]:
        if self.showing_favorites:
            pieces: Sequence[Piece] = self.favorited_pieces
        elif self.selected_artist_id:
            pieces = self.pieces_for_artist(self.selected_artist_id)
        else:
            pieces = self.pieces
        return self.loader.search_pieces(pieces, self.artists, self.search_query)
