from __future__ import annotations
"""Local-first updates that can be rolled back to an exact snapshot."""
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass
class OptimisticChange(Generic[T]):
    """Handle for an applied optimistic change."""

    snapshot: T
    applied: T
    _restore: Callable[[T], None]
    reverted: bool = False

    def revert(self) -> None:
        if self.reverted:
            return
        self.reverted = True
        self._restore(self.snapshot)


def apply_optimistic(
    current: T,
    mutate: Callable[[T], T],
    commit: Callable[[T], None],
) -> OptimisticChange[T]:
    """Commit ``mutate(current)`` now and return a handle that can undo it.

    ``current`` is kept as-is for the revert, so it must not be mutated in
    place by ``mutate``.
    """
    applied = mutate(current)
    commit(applied)
    return OptimisticChange(snapshot=current, applied=applied, _restore=commit)
