"""Batch-level duplicate suppression against names already stored."""

from typing import Dict, FrozenSet, Iterable, Optional

from ..core.filenames import output_filename
from ..core.logging_config import get_logger
from .storage import StorageWriter


class DuplicateGuard:
    """
    Precomputed set of stored names for one event.

    Existing names are listed once per batch and normalized through the
    same sanitizer used for new uploads, so ``IMG 01.PNG`` and
    ``IMG_01.jpg`` collide the same way they would as storage keys.
    """

    def __init__(self, existing: Iterable[str] = ()):
        self._existing: FrozenSet[str] = frozenset(output_filename(name) for name in existing)
        self._claimed: Dict[str, Optional[str]] = {}

    @classmethod
    async def load(cls, storage: StorageWriter, event_id: str) -> "DuplicateGuard":
        names = await storage.list_names(event_id)
        guard = cls(names)
        get_logger("duplicates").info(
            f"Duplicate guard for event {event_id}: {len(guard)} existing name(s)"
        )
        return guard

    def __len__(self) -> int:
        return len(self._existing)

    def is_duplicate(self, name: str) -> bool:
        """True if the normalized ``name`` is already stored."""
        return output_filename(name) in self._existing

    def claim(self, name: str, owner: Optional[str] = None) -> bool:
        """
        Reserve ``name`` for this batch on behalf of ``owner``.

        Returns False when it is already stored or was claimed by another
        item of the same batch. The owner of a claim may claim it again,
        so a retried item is not mistaken for its own duplicate.
        """
        normalized = output_filename(name)
        if normalized in self._existing:
            return False
        if normalized in self._claimed:
            return owner is not None and self._claimed[normalized] == owner
        self._claimed[normalized] = owner
        return True

    def release(self, name: str) -> None:
        """Give back a claim whose item did not end up stored."""
        self._claimed.pop(output_filename(name), None)
