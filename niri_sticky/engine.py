"""Transition engine for sticky and staged windows.

Every state-changing operation follows the same sequence:

1. validate the window against a fresh live-window snapshot from niri
2. read its membership (absent / sticky / staged) from one store snapshot
3. look the (action, membership) pair up in the transition table
4. perform the niri move the transition needs, then commit the new membership

If the move fails, the pre-operation membership is restored before the error
propagates. niri is never called while a store lock is held.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set, Tuple, Type

from .errors import (
    AlreadyInTargetState,
    IneligibleState,
    NoMatch,
    ResourceNotFound,
    StickyError,
)
from .host import Destination, HostGateway
from .models import Membership
from .state import StateStore

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Single-window operations driven by the transition table."""
    TOGGLE = "toggle"
    TOGGLE_FOCUSED = "toggle_focused"
    STAGE = "stage"
    UNSTAGE = "unstage"
    TOGGLE_STAGE = "toggle_stage"


class Move(str, Enum):
    """Where niri has to move the window for a transition."""
    NONE = "none"
    STAGE = "stage"
    CONTEXT = "context"


@dataclass(frozen=True)
class Transition:
    target: Membership
    move: Move = Move.NONE


ABSENT = Membership.ABSENT
STICKY = Membership.STICKY
STAGED = Membership.STAGED

TRANSITIONS: Dict[Tuple[Action, Membership], Transition] = {
    # Tri-state toggle by app_id / title
    (Action.TOGGLE, ABSENT): Transition(STICKY, Move.CONTEXT),
    (Action.TOGGLE, STICKY): Transition(ABSENT),
    (Action.TOGGLE, STAGED): Transition(STICKY, Move.CONTEXT),
    # The focused window is already on the active workspace
    (Action.TOGGLE_FOCUSED, ABSENT): Transition(STICKY),
    (Action.TOGGLE_FOCUSED, STICKY): Transition(ABSENT),
    (Action.TOGGLE_FOCUSED, STAGED): Transition(STICKY),
    (Action.STAGE, STICKY): Transition(STAGED, Move.STAGE),
    (Action.UNSTAGE, STAGED): Transition(STICKY, Move.CONTEXT),
    (Action.TOGGLE_STAGE, STICKY): Transition(STAGED, Move.STAGE),
    (Action.TOGGLE_STAGE, STAGED): Transition(STICKY, Move.CONTEXT),
}

REFUSALS: Dict[Tuple[Action, Membership], Tuple[Type[StickyError], str]] = {
    (Action.STAGE, STAGED): (AlreadyInTargetState, "staged"),
    (Action.STAGE, ABSENT): (IneligibleState, "is not in sticky list, cannot stage"),
    (Action.UNSTAGE, STICKY): (AlreadyInTargetState, "sticky"),
    (Action.UNSTAGE, ABSENT): (IneligibleState, "is not in staged list, cannot unstage"),
    (Action.TOGGLE_STAGE, ABSENT): (IneligibleState, "is not in sticky list"),
}


def plan(action: Action, membership: Membership, window_id: int) -> Transition:
    """Look up the transition for a window's current membership.

    Raises:
        AlreadyInTargetState: If the window already has the target membership
        IneligibleState: If the membership does not allow the action
    """
    transition = TRANSITIONS.get((action, membership))
    if transition is not None:
        return transition
    error_cls, detail = REFUSALS[(action, membership)]
    raise error_cls(window_id, detail)


class TransitionEngine:
    """Keeps the sticky/staged sets consistent with niri."""

    def __init__(self, store: StateStore, host: HostGateway, stage_workspace: str = "stage"):
        """
        Initialize transition engine.

        Args:
            store: Sticky/staged set store
            host: Gateway to the compositor
            stage_workspace: Name of the staging workspace
        """
        self.store = store
        self.host = host
        self.stage_workspace = stage_workspace

    # Helpers

    async def _require_live(self, window_id: int, what: str = "Window") -> None:
        live = await self.host.list_live_resources()
        if window_id not in live:
            raise ResourceNotFound(window_id, what)

    async def resolve_by_label(self, label: str) -> int:
        window_id = await self.host.resolve_by_label(label)
        if window_id is None:
            raise NoMatch("appid", label)
        return window_id

    async def resolve_by_title(self, substring: str) -> int:
        window_id = await self.host.resolve_by_title(substring)
        if window_id is None:
            raise NoMatch("title", substring)
        return window_id

    async def _destination(self, move: Move, context_id: Optional[int]) -> Optional[Destination]:
        """Resolve where a transition moves the window.

        The active workspace is only queried when the move needs it and the
        caller did not pass one.
        """
        if move == Move.STAGE:
            return self.stage_workspace
        if move == Move.CONTEXT:
            if context_id is None:
                context_id = await self.host.get_active_context()
            return context_id
        return None

    async def _transition(
        self,
        action: Action,
        window_id: int,
        context_id: Optional[int] = None,
    ) -> Tuple[Transition, Optional[Destination]]:
        """Classify, move and commit one window."""
        membership = await self.store.classify(window_id)
        transition = plan(action, membership, window_id)
        destination = await self._destination(transition.move, context_id)

        if destination is not None:
            try:
                await self.host.move_resource(window_id, destination)
            except Exception as e:
                await self.store.restore(window_id, membership, transition.target)
                logger.warning(
                    f"{action.value} of window {window_id} failed moving to {destination}: {e}; "
                    f"kept {membership.value}"
                )
                raise

        await self.store.commit(window_id, transition.target)
        logger.info(
            f"{action.value}: window {window_id} {membership.value} -> {transition.target.value}"
        )
        return transition, destination

    # Sticky set

    async def add(self, window_id: int) -> bool:
        """Mark a window sticky; True if newly added."""
        await self._require_live(window_id)
        return await self.store.add_sticky(window_id)

    async def remove(self, window_id: int) -> bool:
        """Unmark a sticky window; True if it was sticky."""
        await self._require_live(window_id)
        return await self.store.remove_sticky(window_id)

    async def list_sticky(self) -> Set[int]:
        snapshot = await self.store.snapshot_sticky()
        live = await self.host.list_live_resources()
        return set(snapshot & live)

    async def list_staged(self) -> Set[int]:
        snapshot = await self.store.snapshot_staged()
        live = await self.host.list_live_resources()
        return set(snapshot & live)

    async def toggle_focused(self) -> bool:
        """Invert the focused window's sticky membership; True if now sticky."""
        window_id = await self.host.get_focused_resource()
        await self._require_live(window_id, "Focused window")
        transition, _ = await self._transition(Action.TOGGLE_FOCUSED, window_id)
        return transition.target == STICKY

    async def _toggle(self, window_id: int) -> bool:
        await self._require_live(window_id)
        transition, _ = await self._transition(Action.TOGGLE, window_id)
        return transition.target == STICKY

    async def toggle_by_label(self, label: str) -> bool:
        """Tri-state toggle of the first window with this app_id.

        staged -> sticky (moved to the active workspace), sticky -> removed,
        neither -> sticky (moved to the active workspace).

        Returns:
            True if the window is now sticky
        """
        return await self._toggle(await self.resolve_by_label(label))

    async def toggle_by_title(self, substring: str) -> bool:
        """Tri-state toggle of the first window whose title contains substring."""
        return await self._toggle(await self.resolve_by_title(substring))

    # Staging

    async def stage(self, window_id: int) -> None:
        """Move a sticky window to the staging workspace."""
        await self._require_live(window_id)
        await self._transition(Action.STAGE, window_id)

    async def stage_focused(self) -> int:
        window_id = await self.host.get_focused_resource()
        await self.stage(window_id)
        return window_id

    async def stage_by_label(self, label: str) -> int:
        window_id = await self.resolve_by_label(label)
        await self.stage(window_id)
        return window_id

    async def stage_by_title(self, substring: str) -> int:
        window_id = await self.resolve_by_title(substring)
        await self.stage(window_id)
        return window_id

    async def unstage(self, window_id: int, context_id: int) -> None:
        """Move a staged window to a workspace and make it sticky again."""
        await self._require_live(window_id)
        await self._transition(Action.UNSTAGE, window_id, context_id)

    async def unstage_focused(self, context_id: int) -> int:
        window_id = await self.host.get_focused_resource()
        await self.unstage(window_id, context_id)
        return window_id

    async def unstage_by_label(self, label: str, context_id: int) -> int:
        window_id = await self.resolve_by_label(label)
        await self.unstage(window_id, context_id)
        return window_id

    async def unstage_by_title(self, substring: str, context_id: int) -> int:
        window_id = await self.resolve_by_title(substring)
        await self.unstage(window_id, context_id)
        return window_id

    async def _toggle_stage(self, window_id: int, context_id: Optional[int]) -> Optional[int]:
        await self._require_live(window_id)
        transition, destination = await self._transition(
            Action.TOGGLE_STAGE, window_id, context_id
        )
        if transition.target == STAGED:
            return None
        return destination

    async def toggle_stage_by_label(
        self, label: str, context_id: Optional[int] = None
    ) -> Optional[int]:
        """Stage a sticky window or unstage a staged one, by app_id.

        Args:
            label: Exact app_id
            context_id: Workspace to unstage onto (defaults to the active one,
                queried only when unstaging)

        Returns:
            None if the window is now staged, else the workspace it was unstaged to
        """
        return await self._toggle_stage(await self.resolve_by_label(label), context_id)

    async def toggle_stage_by_title(
        self, substring: str, context_id: Optional[int] = None
    ) -> Optional[int]:
        return await self._toggle_stage(await self.resolve_by_title(substring), context_id)

    # Bulk operations

    async def _move_each(self, window_ids, destination: Destination) -> list:
        moved = []
        for window_id in sorted(window_ids):
            try:
                await self.host.move_resource(window_id, destination)
                moved.append(window_id)
            except StickyError as e:
                logger.warning(f"Failed to move window {window_id} to {destination}: {e.message}")
        return moved

    async def stage_all(self) -> int:
        """Stage every live sticky window.

        Returns:
            Number of windows staged
        """
        sticky = await self.store.snapshot_sticky()
        if not sticky:
            return 0

        live = await self.host.list_live_resources()
        moved = await self._move_each(sticky & live, self.stage_workspace)
        committed = await self.store.commit_many(moved, STICKY, STAGED)
        logger.info(f"Staged {len(committed)} of {len(sticky)} sticky windows")
        return len(committed)

    async def unstage_all(self, context_id: int) -> int:
        """Unstage every live staged window onto a workspace.

        Returns:
            Number of windows unstaged
        """
        staged = await self.store.snapshot_staged()
        if not staged:
            return 0

        live = await self.host.list_live_resources()
        moved = await self._move_each(staged & live, context_id)
        committed = await self.store.commit_many(moved, STAGED, STICKY)
        logger.info(f"Unstaged {len(committed)} of {len(staged)} staged windows")
        return len(committed)

    async def reconcile_on_activation(self, context_id: int) -> int:
        """Prune closed windows and bring every sticky window to a workspace.

        Returns:
            Number of windows moved
        """
        live = await self.host.list_live_resources()
        await self.store.retain_live(live)

        sticky = await self.store.snapshot_sticky()
        moved = await self._move_each(sticky, context_id)
        if sticky:
            logger.info(f"Moved {len(moved)} of {len(sticky)} sticky windows to workspace {context_id}")
        return len(moved)
