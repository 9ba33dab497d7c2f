"""State store for niri-sticky.

Holds the sticky and staged window sets, each behind its own asyncio lock.
When both locks are needed they are taken sticky first, then staged.
No method awaits anything other than these locks, so callers can never
reach niri while a lock is held.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import FrozenSet, Iterable, List, Set

from .errors import IneligibleState, InvalidState
from .models import Membership

logger = logging.getLogger(__name__)


class StateStore:
    """Sticky and staged window sets with async-safe operations."""

    def __init__(self) -> None:
        """Initialize store with empty sets."""
        self._sticky: Set[int] = set()
        self._staged: Set[int] = set()
        self._sticky_lock = asyncio.Lock()
        self._staged_lock = asyncio.Lock()

    @asynccontextmanager
    async def _both(self):
        """Hold both locks in the fixed sticky -> staged order."""
        async with self._sticky_lock:
            async with self._staged_lock:
                yield

    def _set_for(self, membership: Membership) -> Set[int]:
        if membership == Membership.STICKY:
            return self._sticky
        if membership == Membership.STAGED:
            return self._staged
        raise ValueError(f"No set backs membership {membership.value}")

    async def classify(self, window_id: int) -> Membership:
        """Read a window's membership from one snapshot of both sets.

        Raises:
            InvalidState: If the window is in both sets
        """
        async with self._both():
            in_sticky = window_id in self._sticky
            in_staged = window_id in self._staged

        if in_sticky and in_staged:
            logger.error(f"Window {window_id} found in both sticky and staged sets")
            raise InvalidState(window_id)
        if in_sticky:
            return Membership.STICKY
        if in_staged:
            return Membership.STAGED
        return Membership.ABSENT

    async def snapshot_sticky(self) -> FrozenSet[int]:
        async with self._sticky_lock:
            return frozenset(self._sticky)

    async def snapshot_staged(self) -> FrozenSet[int]:
        async with self._staged_lock:
            return frozenset(self._staged)

    async def add_sticky(self, window_id: int) -> bool:
        """Insert into the sticky set.

        Returns:
            True if newly inserted, False if already sticky

        Raises:
            IneligibleState: If the window is staged
        """
        async with self._both():
            if window_id in self._staged:
                raise IneligibleState(window_id, "is staged; unstage it instead")
            if window_id in self._sticky:
                return False
            self._sticky.add(window_id)
            return True

    async def remove_sticky(self, window_id: int) -> bool:
        """Erase from the sticky set; True if it was present."""
        async with self._sticky_lock:
            if window_id not in self._sticky:
                return False
            self._sticky.discard(window_id)
            return True

    async def commit(self, window_id: int, target: Membership) -> None:
        """Give a window exactly the target membership."""
        async with self._both():
            self._sticky.discard(window_id)
            self._staged.discard(window_id)
            if target != Membership.ABSENT:
                self._set_for(target).add(window_id)
        logger.debug(f"Window {window_id} is now {target.value}")

    async def restore(self, window_id: int, original: Membership, target: Membership) -> None:
        """Roll a failed transition back to its original membership.

        A window that has meanwhile reached the target set is left there,
        so the two sets stay disjoint.
        """
        async with self._both():
            if target != Membership.ABSENT and window_id in self._set_for(target):
                logger.debug(f"Window {window_id} already {target.value}; nothing to restore")
                return
            if original != Membership.ABSENT:
                other = self._staged if original == Membership.STICKY else self._sticky
                if window_id not in other:
                    self._set_for(original).add(window_id)
        logger.debug(f"Window {window_id} restored to {original.value}")

    async def commit_many(
        self,
        window_ids: Iterable[int],
        source: Membership,
        target: Membership,
    ) -> List[int]:
        """Move windows still in the source set to the target set.

        Returns:
            IDs that were moved
        """
        moved = []
        async with self._both():
            src = self._set_for(source)
            dst = self._set_for(target)
            for window_id in window_ids:
                if window_id not in src:
                    logger.debug(f"Window {window_id} left {source.value} during bulk pass; skipping")
                    continue
                src.discard(window_id)
                dst.add(window_id)
                moved.append(window_id)
        return moved

    async def retain_live(self, live: Set[int]) -> Set[int]:
        """Drop every window that is not in the live set.

        Returns:
            IDs that were pruned
        """
        async with self._both():
            pruned = (self._sticky | self._staged) - live
            self._sticky &= live
            self._staged &= live
        if pruned:
            logger.info(f"Pruned closed windows: {sorted(pruned)}")
        return pruned
