import pytest

from fraglog.ingest import IngestionCoordinator
from fraglog.models import RawLine
from fraglog.store import MemoryStore

HEADER = "L 08/19/2025 - 19:03:31: "
UUID = "18a5c248-c891-42a6-b72e-af0b184937c1"

GG_LINE = HEADER + '"P<1><[U:1:1]><CT>" say "gg wp"'

ROUND_STATS_BLOCK = [
    HEADER + "JSON_BEGIN{",
    HEADER + '"name" : "round_stats",',
    HEADER + '"round_number" : "3",',
    HEADER + '"map" : "de_dust2",',
    HEADER + '"players" : {',
    HEADER + '"player_0" : "1, 2, 3",',
    HEADER + '"player_1" : "4, 5, 6"',
    HEADER + "}}JSON_END",
]

ROUND_STATS = {
    "name": "round_stats",
    "round_number": "3",
    "map": "de_dust2",
    "players": {"player_0": "1, 2, 3", "player_1": "4, 5, 6"},
}


def raw(source_id, text):
    return RawLine(source_id=source_id, text=text)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def coordinator(store):
    """Coordinator with a small running pool; stopped after the test."""
    coord = IngestionCoordinator(store, workers=2, queue_size=100)
    coord.start()
    yield coord
    coord.stop()
