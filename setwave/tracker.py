"""Active-song tracking — which song brackets the playhead."""

from __future__ import annotations

from typing import Sequence


class ActiveSongTracker:
    """Remembers the active song index between playhead updates."""

    def __init__(self):
        self.index: int | None = None

    @staticmethod
    def locate(position: float | None, boundaries: Sequence[float]) -> int | None:
        """Index of the last boundary <= position, or None.

        Boundaries keep cue point order, so they are scanned rather than
        bisected.
        """
        if position is None:
            return None
        for i in range(len(boundaries) - 1, -1, -1):
            if boundaries[i] <= position:
                return i
        return None

    def update(self, position: float | None, boundaries: Sequence[float]) -> bool:
        """Recompute the active song; True when it changed."""
        new_index = self.locate(position, boundaries)
        if new_index == self.index:
            return False
        self.index = new_index
        return True
