"""Document paths used by the gallery client."""


def collections_path(gallery_id: str) -> str:
    return f'galleries/{gallery_id}/collections'


def collection_doc(gallery_id: str, collection_id: str) -> str:
    return f'{collections_path(gallery_id)}/{collection_id}'


def artists_path(gallery_id: str) -> str:
    return f'galleries/{gallery_id}/artists'


def pieces_path(gallery_id: str) -> str:
    return f'galleries/{gallery_id}/pieces'


def user_session_doc(gallery_id: str, session_id: str) -> str:
    return f'galleries/{gallery_id}/userSessions/{session_id}'


def user_piece_interaction_doc(gallery_id: str, user_id: str, piece_id: str) -> str:
    return f'galleries/{gallery_id}/userPieceInteractions/{user_id}_{piece_id}'


def viewing_event_doc(event_id: str) -> str:
    return f'viewing_events/{event_id}'


def piece_stats_doc(piece_id: str) -> str:
    return f'pieceStats/{piece_id}'


def favorites_path(user_id: str) -> str:
    return f'favorites/{user_id}/pieces'


def favorite_piece_doc(user_id: str, piece_id: str) -> str:
    return f'{favorites_path(user_id)}/{piece_id}'
