import sys
import pathlib
import pytest

# Ensure the repository root (containing 'gallery_client') is on sys.path
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from gallery_client.models.auth import GalleryUser
from tests.fakes import RecordingStore, gallery_documents


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def gallery_store():
    """Store seeded with gallery g1 / collection c1 (two artists, three active pieces)."""
    return RecordingStore(gallery_documents())


@pytest.fixture
def user():
    return GalleryUser(
        user_id='u1',
        display_name='Visitor One',
        collection_id='c1',
        code_value='ABC123',
    )


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
