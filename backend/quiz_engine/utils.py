import random
import time
from typing import Iterable, List, Optional

ROOM_CODE_MIN = 100000
ROOM_CODE_MAX = 999999


def now_ts() -> float:
    return time.time()


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return str(rng.randint(ROOM_CODE_MIN, ROOM_CODE_MAX))


def build_rankings(players: Iterable) -> List[dict]:
    """Rank players by score, ties broken by display name."""
    ordered = sorted(players, key=lambda p: (-p.score, p.display_name.lower()))
    return [
        {
            "rank": idx + 1,
            "identity": p.identity,
            "display_name": p.display_name,
            "connection_id": p.connection_id,
            "score": p.score,
        }
        for idx, p in enumerate(ordered)
    ]
