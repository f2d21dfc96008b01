"""Computer opponent: a deliberately weak capture-first random mover."""
import os
import random
from typing import Any, Dict, List, Optional, Sequence


def choose_move(candidates: Sequence[Dict[str, Any]], rng=random) -> Optional[Dict[str, Any]]:
    """Pick a random capture if one exists, else any random legal move."""
    if not candidates:
        return None
    captures = [m for m in candidates if m.get('captured')]
    return rng.choice(captures or list(candidates))


class FlavorText:
    """Taunts read from a plain text file, one per line.

    The file is re-read on every call so it can be edited while the server runs.
    Read errors propagate; callers decide whether to surface them.
    """

    def __init__(self, path: str):
        self.path = path

    def lines(self) -> List[str]:
        if not self.path or not os.path.exists(self.path):
            return []
        with open(self.path, encoding='utf-8') as fh:
            return [line.strip() for line in fh if line.strip()]

    def random_line(self, rng=random) -> Optional[str]:
        lines = self.lines()
        if not lines:
            return None
        return rng.choice(lines)
