from __future__ import annotations
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Collection / Artist / Piece documents
# -----------------------------------------------------------------------------


class Collection(BaseModel):
    collection_id: str = Field(alias='collectionId')
    name: str = ''
    description: Optional[str] = None
    # artist id -> list of piece ids, or {"pieces": [...]} in older documents
    artists: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        'populate_by_name': True,
        'extra': 'allow',
        'frozen': True,
    }


class Artist(BaseModel):
    artist_id: str = Field(alias='artistId')
    display_name: str = Field(alias='displayName')
    bio: Optional[str] = None
    nationality: Optional[str] = None
    birth_year: Optional[int] = Field(None, alias='birthYear')
    death_year: Optional[int] = Field(None, alias='deathYear')
    image_path: Optional[str] = Field(None, alias='imagePath')
    active: bool = True
    pieces: Optional[List[str]] = None

    model_config = {
        'populate_by_name': True,
        'extra': 'ignore',
        'frozen': True,
    }


class Piece(BaseModel):
    id: str
    title: str
    artist_id: str = Field(alias='artistID')
    date: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    width_inches: Optional[float] = None
    height_inches: Optional[float] = None
    thumbnail_path: Optional[str] = None
    image_half_path: Optional[str] = None
    image_full_path: Optional[str] = None
    active: bool

    model_config = {
        'populate_by_name': True,
        'extra': 'ignore',
        'frozen': True,
    }


class GalleryGraph(BaseModel):
    """One immutable snapshot of a collection's artist/piece graph."""

    gallery_id: str
    collection: Collection
    artists: tuple[Artist, ...] = ()
    pieces: tuple[Piece, ...] = ()
    artist_piece_map: Dict[str, tuple[Piece, ...]] = Field(default_factory=dict)

    model_config = {'frozen': True}

    def get_piece(self, piece_id: str) -> Piece | None:
        for piece in self.pieces:
            if piece.id == piece_id:
                return piece
        return None

    def get_artist(self, artist_id: str) -> Artist | None:
        for artist in self.artists:
            if artist.artist_id == artist_id:
                return artist
        return None

    def pieces_for_artist(self, artist_id: str) -> list[Piece]:
        return list(self.artist_piece_map.get(artist_id, ()))

    def artist_for_piece(self, piece: Piece) -> Artist | None:
        return self.get_artist(piece.artist_id)
