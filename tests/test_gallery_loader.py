"""Tests for collection graph assembly, ordering and search."""

import pytest
from hypothesis import given, strategies as st

from gallery_client.core.errors import MalformedData, NotFound, TransientIOError
from gallery_client.models.gallery import Artist, Piece
from gallery_client.services.gallery_loader import (
    GalleryLoader,
    build_artist_piece_map,
    normalize_artist_associations,
    search_pieces,
    sort_artists,
)
from gallery_client.utils.string_utils import last_name_token
from gallery_client.store.base import DOCUMENT_ID, chunked
from tests.fakes import RecordingStore, piece_doc


def _artist(artist_id: str, name: str) -> Artist:
    return Artist(artist_id=artist_id, display_name=name)


def _piece(piece_id: str, title: str, artist_id: str) -> Piece:
    return Piece(id=piece_id, title=title, artist_id=artist_id, active=True)


def _sized_gallery(n: int) -> dict:
    docs = {
        'galleries/g/collections/c': {
            'name': 'Big',
            'artists': {f'a{i}': [f'p{i}'] for i in range(n)},
        },
    }
    for i in range(n):
        docs[f'galleries/g/artists/a{i}'] = {'displayName': f'Artist Number{i}'}
        docs[f'galleries/g/pieces/p{i}'] = piece_doc(f'Piece {i}', f'a{i}')
    return docs


class TestNormalizeArtistAssociations:
    def test_both_shapes_collapse(self):
        artist_ids, piece_ids = normalize_artist_associations({
            'a1': ['p1', 'p2'],
            'a2': {'pieces': ['p3']},
        })
        assert artist_ids == ['a1', 'a2']
        assert piece_ids == ['p1', 'p2', 'p3']

    def test_duplicates_and_junk_are_dropped(self):
        artist_ids, piece_ids = normalize_artist_associations({
            'a1': ['p1', 'p1', '', None],
            'a2': {'pieces': ['p1', 'p2']},
            'a3': {'other': 1},
            'a4': 'not-a-list',
        })
        assert artist_ids == ['a1', 'a2', 'a3', 'a4']
        assert piece_ids == ['p1', 'p2']

    def test_missing_field(self):
        assert normalize_artist_associations(None) == ([], [])


class TestOrdering:
    def test_artists_sorted_by_last_name(self):
        artists = [_artist('a1', "Georgia O'Keeffe"), _artist('a2', 'Ansel Adams')]
        assert [a.display_name for a in sort_artists(artists)] == ['Ansel Adams', "Georgia O'Keeffe"]

    def test_equal_last_names_keep_fetch_order(self):
        artists = [_artist('x', 'Zed Smith'), _artist('y', 'Amy Smith'), _artist('z', 'Bo Brown')]
        assert [a.artist_id for a in sort_artists(artists)] == ['z', 'x', 'y']

    def test_artist_piece_map_is_title_sorted_and_skips_dangling(self):
        artists = [_artist('a1', 'One')]
        pieces = [_piece('p1', 'b title', 'a1'), _piece('p2', 'A title', 'a1'), _piece('p9', 'Orphan', 'ghost')]
        index = build_artist_piece_map(artists, pieces)
        assert [p.id for p in index['a1']] == ['p2', 'p1']
        assert 'ghost' not in index

    @given(st.lists(st.text(alphabet='abcdefgh ', min_size=1, max_size=12), max_size=15))
    def test_sort_is_a_stable_permutation(self, names):
        artists = [_artist(f'a{i}', name) for i, name in enumerate(names)]
        ordered = sort_artists(artists)
        assert sorted(a.artist_id for a in ordered) == sorted(a.artist_id for a in artists)
        keys = [last_name_token(a.display_name).casefold() for a in ordered]
        assert keys == sorted(keys)


class TestSearch:
    artists = [_artist('a1', "Georgia O'Keeffe"), _artist('a2', 'Ansel Adams')]
    pieces = [_piece('p1', 'Black Iris', 'a1'), _piece('p2', 'Moonrise', 'a2')]

    def test_whitespace_query_returns_input_unchanged(self):
        assert search_pieces(self.pieces, self.artists, '   ') is self.pieces
        assert search_pieces(self.pieces, self.artists, '') is self.pieces

    def test_matches_title_case_insensitively(self):
        assert [p.id for p in search_pieces(self.pieces, self.artists, 'IRIS')] == ['p1']

    def test_matches_artist_name(self):
        assert [p.id for p in search_pieces(self.pieces, self.artists, 'adams')] == ['p2']

    def test_no_match(self):
        assert search_pieces(self.pieces, self.artists, 'zzz') == []

    @given(st.text(max_size=8))
    def test_results_are_a_subset_in_input_order(self, query):
        result = list(search_pieces(self.pieces, self.artists, query))
        ids = [p.id for p in self.pieces]
        positions = [ids.index(p.id) for p in result]
        assert positions == sorted(positions)


class TestChunking:
    @given(st.lists(st.text(min_size=1, max_size=4), max_size=40), st.integers(min_value=1, max_value=10))
    def test_chunks_preserve_every_id_once(self, ids, size):
        chunks = chunked(ids, size)
        assert [x for chunk in chunks for x in chunk] == ids
        assert all(1 <= len(chunk) <= size for chunk in chunks)


class TestGalleryLoader:
    @pytest.mark.asyncio
    async def test_load_builds_graph(self, gallery_store):
        graph = await GalleryLoader(gallery_store).load('g1', 'c1')
        assert graph.collection.name == 'Spring Show'
        assert [a.display_name for a in graph.artists] == ['Ansel Adams', "Georgia O'Keeffe"]
        assert sorted(p.id for p in graph.pieces) == ['p1', 'p2', 'p3']
        assert all(p.active for p in graph.pieces)
        assert [p.id for p in graph.pieces_for_artist('a1')] == ['p2', 'p1']
        assert [p.id for p in graph.pieces_for_artist('a2')] == ['p3']
        assert graph.get_piece('p3').description is None
        assert graph.artist_for_piece(graph.get_piece('p1')).artist_id == 'a1'

    @pytest.mark.asyncio
    async def test_loader_lookups_over_a_loaded_graph(self, gallery_store):
        loader = GalleryLoader(gallery_store)
        graph = await loader.load('g1', 'c1')
        assert [p.id for p in loader.pieces_for_artist(graph, 'a1')] == ['p2', 'p1']
        assert loader.pieces_for_artist(graph, 'nobody') == []
        assert [p.id for p in loader.search_pieces(graph.pieces, graph.artists, 'moon')] == ['p3']

    @pytest.mark.asyncio
    async def test_piece_queries_filter_active(self, gallery_store):
        await GalleryLoader(gallery_store).load('g1', 'c1')
        piece_queries = [filters for path, filters in gallery_store.calls_for('query') if path == 'galleries/g1/pieces']
        assert piece_queries
        for filters in piece_queries:
            assert any(f.field == 'active' and f.op == '==' and f.value is True for f in filters)

    @pytest.mark.asyncio
    @pytest.mark.parametrize('size,expected_chunks', [(1, 1), (10, 1), (11, 2), (20, 2), (21, 3)])
    async def test_one_query_per_chunk_of_ten(self, size, expected_chunks):
        store = RecordingStore(_sized_gallery(size))
        graph = await GalleryLoader(store).load('g', 'c')
        artist_queries = [f for p, f in store.calls_for('query') if p == 'galleries/g/artists']
        piece_queries = [f for p, f in store.calls_for('query') if p == 'galleries/g/pieces']
        assert len(artist_queries) == expected_chunks
        assert len(piece_queries) == expected_chunks
        requested = [v for filters in piece_queries for f in filters if f.field == DOCUMENT_ID for v in f.value]
        assert sorted(requested) == sorted(f'p{i}' for i in range(size))
        assert len(graph.pieces) == size

    @pytest.mark.asyncio
    async def test_smaller_batch_limit(self):
        store = RecordingStore(_sized_gallery(7))
        await GalleryLoader(store, batch_limit=3).load('g', 'c')
        assert len([p for p, _ in store.calls_for('query') if p == 'galleries/g/pieces']) == 3

    def test_batch_limit_bounds(self, store):
        with pytest.raises(ValueError):
            GalleryLoader(store, batch_limit=11)
        with pytest.raises(ValueError):
            GalleryLoader(store, batch_limit=0)

    @pytest.mark.asyncio
    async def test_missing_collection_raises_not_found(self, store):
        with pytest.raises(NotFound):
            await GalleryLoader(store).load('g1', 'nope')

    @pytest.mark.asyncio
    async def test_read_failure_aborts_whole_load(self, gallery_store):
        gallery_store.fail('query', 'galleries/g1/pieces')
        with pytest.raises(TransientIOError):
            await GalleryLoader(gallery_store).load('g1', 'c1')

    @pytest.mark.asyncio
    async def test_unexpected_store_exception_is_wrapped(self, gallery_store):
        gallery_store.fail('get', 'galleries/g1/collections', RuntimeError('socket closed'))
        with pytest.raises(TransientIOError) as info:
            await GalleryLoader(gallery_store).load('g1', 'c1')
        assert isinstance(info.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_malformed_pieces_are_skipped(self, gallery_store):
        gallery_store.inner.load_documents({'galleries/g1/pieces/p2': {'artistID': 'a1', 'active': True}})
        graph = await GalleryLoader(gallery_store).load('g1', 'c1')
        assert graph.get_piece('p2') is None
        assert [p.id for p in graph.pieces_for_artist('a1')] == ['p1']

    @pytest.mark.asyncio
    async def test_malformed_collection_raises(self, store):
        store.inner.load_documents({'galleries/g1/collections/c1': {'artists': ['not', 'a', 'mapping']}})
        with pytest.raises(MalformedData):
            await GalleryLoader(store).load('g1', 'c1')

    @pytest.mark.asyncio
    async def test_piece_with_artist_outside_collection_stays_in_flat_list(self, gallery_store):
        gallery_store.inner.load_documents({
            'galleries/g1/collections/c1': {'name': 'S', 'artists': {'a1': ['p1', 'p5']}},
            'galleries/g1/pieces/p5': piece_doc('Stray', 'a2'),
        })
        graph = await GalleryLoader(gallery_store).load('g1', 'c1')
        assert graph.get_piece('p5') is not None
        assert 'a2' not in graph.artist_piece_map
        assert sum(len(v) for v in graph.artist_piece_map.values()) == 1

    @pytest.mark.asyncio
    async def test_empty_collection(self, store):
        store.inner.load_documents({'galleries/g1/collections/c1': {'name': 'Empty'}})
        graph = await GalleryLoader(store).load('g1', 'c1')
        assert graph.artists == () and graph.pieces == ()
        assert store.calls_for('query') == []
