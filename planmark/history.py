"""
Undo/redo history for a page's annotation layers.
"""
from typing import List, Optional

from .shapes import Layer, clone_layers


class History:
    """Linear list of layer snapshots with a cursor.

    The snapshot at ``index`` always equals the live document after a
    mutation has been recorded, so undo steps back to ``index - 1``.
    """

    def __init__(self, max_size: int = 100):
        """
        Args:
            max_size: Maximum number of snapshots kept; the oldest is dropped first
        """
        self.snapshots: List[List[Layer]] = []
        self.index = -1
        self.max_size = max_size

    def reset(self, layers: List[Layer]) -> None:
        """Start a fresh history whose only entry is ``layers`` (page load)."""
        self.snapshots = [clone_layers(layers)]
        self.index = 0

    def push(self, layers: List[Layer]) -> None:
        """Record ``layers`` as the newest state, discarding any redo branch."""
        del self.snapshots[self.index + 1:]
        self.snapshots.append(clone_layers(layers))
        if len(self.snapshots) > self.max_size:
            del self.snapshots[0]
        self.index = len(self.snapshots) - 1

    def can_undo(self) -> bool:
        return self.index > 0

    def can_redo(self) -> bool:
        return self.index < len(self.snapshots) - 1

    def undo(self) -> Optional[List[Layer]]:
        if not self.can_undo():
            return None
        self.index -= 1
        return clone_layers(self.snapshots[self.index])

    def redo(self) -> Optional[List[Layer]]:
        if not self.can_redo():
            return None
        self.index += 1
        return clone_layers(self.snapshots[self.index])

    def __len__(self) -> int:
        return len(self.snapshots)
