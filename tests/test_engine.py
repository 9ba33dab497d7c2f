"""
Unit tests for TransitionEngine.

Tests cover the sticky set, tri-state toggles, staging, rollback on failed
moves, bulk operations, reconciliation on workspace activation and
operations whose niri moves interleave.
"""

import asyncio
import random

import pytest

from niri_sticky.engine import Action, Move, TRANSITIONS, plan
from niri_sticky.errors import (
    AlreadyInTargetState,
    HostRejected,
    IneligibleState,
    InvalidState,
    NoActiveContext,
    NoFocus,
    NoMatch,
    ResourceNotFound,
    StickyError,
)
from niri_sticky.models import Membership


async def assert_disjoint(store):
    sticky = await store.snapshot_sticky()
    staged = await store.snapshot_staged()
    assert not (sticky & staged)


class TestTransitionTable:
    """Test the (action, membership) lookup."""

    def test_every_action_membership_pair_is_covered(self):
        """Test each pair is either a transition or a refusal."""
        for action in Action:
            for membership in Membership:
                try:
                    plan(action, membership, 1)
                except (AlreadyInTargetState, IneligibleState):
                    pass

    def test_stage_from_sticky_moves_to_stage(self):
        transition = plan(Action.STAGE, Membership.STICKY, 1)

        assert transition.target == Membership.STAGED
        assert transition.move == Move.STAGE

    def test_toggle_focused_never_moves(self):
        for membership in Membership:
            assert TRANSITIONS[(Action.TOGGLE_FOCUSED, membership)].move == Move.NONE

    def test_refusals(self):
        with pytest.raises(AlreadyInTargetState):
            plan(Action.STAGE, Membership.STAGED, 1)
        with pytest.raises(IneligibleState):
            plan(Action.STAGE, Membership.ABSENT, 1)
        with pytest.raises(AlreadyInTargetState):
            plan(Action.UNSTAGE, Membership.STICKY, 1)
        with pytest.raises(IneligibleState):
            plan(Action.UNSTAGE, Membership.ABSENT, 1)


class TestStickySet:
    """Test add, remove and list."""

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, engine):
        assert await engine.add(1) is True
        assert await engine.add(1) is False
        assert await engine.list_sticky() == {1}

    @pytest.mark.asyncio
    async def test_add_unknown_window(self, engine, store):
        """Test adding a window niri does not know is refused."""
        with pytest.raises(ResourceNotFound) as exc_info:
            await engine.add(99)

        assert exc_info.value.message == "Window 99 not found in niri"
        assert await store.snapshot_sticky() == frozenset()

    @pytest.mark.asyncio
    async def test_remove(self, engine):
        await engine.add(1)

        assert await engine.remove(1) is True
        assert await engine.remove(1) is False
        assert await engine.list_sticky() == set()

    @pytest.mark.asyncio
    async def test_remove_closed_window(self, engine, host):
        await engine.add(1)
        host.close_window(1)

        with pytest.raises(ResourceNotFound):
            await engine.remove(1)

    @pytest.mark.asyncio
    async def test_list_filters_closed_windows(self, engine, host, store):
        await engine.add(1)
        await engine.add(2)
        host.close_window(2)

        assert await engine.list_sticky() == {1}
        assert await store.snapshot_sticky() == frozenset({1, 2})

    @pytest.mark.asyncio
    async def test_add_staged_window_refused(self, engine):
        await engine.add(1)
        await engine.stage(1)

        with pytest.raises(IneligibleState):
            await engine.add(1)


class TestToggles:
    """Test focused, app_id and title toggles."""

    @pytest.mark.asyncio
    async def test_toggle_focused(self, engine, host):
        host.focused = 2

        assert await engine.toggle_focused() is True
        assert await engine.list_sticky() == {2}
        assert await engine.toggle_focused() is False
        assert await engine.list_sticky() == set()
        assert host.moves == []

    @pytest.mark.asyncio
    async def test_toggle_focused_without_focus(self, engine):
        with pytest.raises(NoFocus):
            await engine.toggle_focused()

    @pytest.mark.asyncio
    async def test_toggle_by_label_moves_to_active_workspace(self, engine, host):
        host.active = 4

        assert await engine.toggle_by_label("kitty") is True
        assert host.moves == [(2, 4)]

        assert await engine.toggle_by_label("kitty") is False
        assert host.moves == [(2, 4)]
        assert await engine.list_sticky() == set()

    @pytest.mark.asyncio
    async def test_toggle_by_label_unstages_staged_window(self, engine, host, store):
        """Test the tri-state toggle takes a staged window back to sticky."""
        await engine.add(2)
        await engine.stage(2)

        assert await engine.toggle_by_label("kitty") is True
        assert host.moves == [(2, "stage"), (2, 1)]
        assert await store.classify(2) == Membership.STICKY
        await assert_disjoint(store)

    @pytest.mark.asyncio
    async def test_toggle_by_title_substring(self, engine):
        assert await engine.toggle_by_title("Firefox") is True
        assert await engine.list_sticky() == {1}

    @pytest.mark.asyncio
    async def test_toggle_by_label_no_match(self, engine):
        with pytest.raises(NoMatch) as exc_info:
            await engine.toggle_by_label("nope")

        assert exc_info.value.message == "No window found with appid nope"

    @pytest.mark.asyncio
    async def test_toggle_by_title_no_match(self, engine):
        with pytest.raises(NoMatch) as exc_info:
            await engine.toggle_by_title("nothing here")

        assert exc_info.value.message == "No window found with title containing 'nothing here'"

    @pytest.mark.asyncio
    async def test_failed_toggle_move_keeps_window_absent(self, engine, host, store):
        host.failing_moves.add(2)

        with pytest.raises(HostRejected):
            await engine.toggle_by_label("kitty")

        assert await store.classify(2) == Membership.ABSENT


class TestStaging:
    """Test stage and unstage."""

    @pytest.mark.asyncio
    async def test_stage_and_unstage_round_trip(self, engine, host, store):
        await engine.add(1)

        await engine.stage(1)
        assert await store.classify(1) == Membership.STAGED
        assert await engine.list_staged() == {1}
        assert await engine.list_sticky() == set()

        await engine.unstage(1, 4)
        assert await store.classify(1) == Membership.STICKY
        assert host.moves == [(1, "stage"), (1, 4)]

    @pytest.mark.asyncio
    async def test_stage_non_sticky_window(self, engine):
        with pytest.raises(IneligibleState) as exc_info:
            await engine.stage(1)

        assert exc_info.value.message == "Window 1 is not in sticky list, cannot stage"

    @pytest.mark.asyncio
    async def test_stage_twice(self, engine):
        await engine.add(1)
        await engine.stage(1)

        with pytest.raises(AlreadyInTargetState):
            await engine.stage(1)

    @pytest.mark.asyncio
    async def test_unstage_sticky_window(self, engine):
        await engine.add(1)

        with pytest.raises(AlreadyInTargetState):
            await engine.unstage(1, 4)

    @pytest.mark.asyncio
    async def test_unstage_absent_window(self, engine):
        with pytest.raises(IneligibleState):
            await engine.unstage(1, 4)

    @pytest.mark.asyncio
    async def test_stage_rolls_back_on_failed_move(self, engine, host, store):
        await engine.add(1)
        host.failing_moves.add(1)

        with pytest.raises(HostRejected):
            await engine.stage(1)

        assert await store.classify(1) == Membership.STICKY
        assert await store.snapshot_staged() == frozenset()

    @pytest.mark.asyncio
    async def test_unstage_rolls_back_on_failed_move(self, engine, host, store):
        await engine.add(1)
        await engine.stage(1)
        host.failing_moves.add(1)

        with pytest.raises(HostRejected):
            await engine.unstage(1, 4)

        assert await store.classify(1) == Membership.STAGED

    @pytest.mark.asyncio
    async def test_stage_window_in_both_sets(self, engine, store):
        store._sticky.add(1)
        store._staged.add(1)

        with pytest.raises(InvalidState):
            await engine.stage(1)

    @pytest.mark.asyncio
    async def test_stage_focused(self, engine, host):
        host.focused = 3
        await engine.add(3)

        assert await engine.stage_focused() == 3
        assert await engine.list_staged() == {3}

    @pytest.mark.asyncio
    async def test_stage_by_label_and_unstage_by_title(self, engine, host):
        await engine.add(3)

        assert await engine.stage_by_label("mpv") == 3
        assert await engine.unstage_by_title("video", 6) == 3
        assert host.moves == [(3, "stage"), (3, 6)]

    @pytest.mark.asyncio
    async def test_toggle_stage(self, engine, host):
        await engine.add(2)

        assert await engine.toggle_stage_by_label("kitty", 5) is None
        assert await engine.toggle_stage_by_title("kitty", 5) == 5
        assert host.moves == [(2, "stage"), (2, 5)]
        assert await engine.list_sticky() == {2}

    @pytest.mark.asyncio
    async def test_toggle_stage_absent_window(self, engine):
        with pytest.raises(IneligibleState):
            await engine.toggle_stage_by_label("kitty", 5)


class TestBulkOperations:
    """Test stage_all and unstage_all."""

    @pytest.mark.asyncio
    async def test_stage_all_empty(self, engine, host):
        assert await engine.stage_all() == 0
        assert host.moves == []

    @pytest.mark.asyncio
    async def test_stage_all_partial_failure(self, engine, host, store):
        """Test a failed move leaves only that window sticky."""
        for window_id in (1, 2, 3):
            await engine.add(window_id)
        host.failing_moves.add(2)

        assert await engine.stage_all() == 2
        assert await store.snapshot_sticky() == frozenset({2})
        assert await store.snapshot_staged() == frozenset({1, 3})
        assert host.moves == [(1, "stage"), (3, "stage")]

    @pytest.mark.asyncio
    async def test_stage_all_skips_closed_windows(self, engine, host, store):
        await engine.add(1)
        await engine.add(2)
        host.close_window(2)

        assert await engine.stage_all() == 1
        assert await store.snapshot_staged() == frozenset({1})

    @pytest.mark.asyncio
    async def test_unstage_all(self, engine, host, store):
        await engine.add(1)
        await engine.add(2)
        await engine.stage_all()

        assert await engine.unstage_all(7) == 2
        assert await store.snapshot_sticky() == frozenset({1, 2})
        assert await store.snapshot_staged() == frozenset()
        assert host.moves[-2:] == [(1, 7), (2, 7)]

    @pytest.mark.asyncio
    async def test_unstage_all_empty(self, engine):
        assert await engine.unstage_all(7) == 0


class TestReconcile:
    """Test reconciliation on workspace activation."""

    @pytest.mark.asyncio
    async def test_reconcile_moves_sticky_and_prunes_closed(self, engine, host, store):
        for window_id in (1, 2, 3):
            await engine.add(window_id)
        await engine.stage(3)
        host.moves.clear()
        host.close_window(2)

        assert await engine.reconcile_on_activation(4) == 1
        assert host.moves == [(1, 4)]
        assert await store.snapshot_sticky() == frozenset({1})
        assert await store.snapshot_staged() == frozenset({3})

    @pytest.mark.asyncio
    async def test_reconcile_prunes_closed_staged_window(self, engine, host, store):
        await engine.add(3)
        await engine.stage(3)
        host.close_window(3)

        await engine.reconcile_on_activation(4)

        assert await store.snapshot_staged() == frozenset()

    @pytest.mark.asyncio
    async def test_reconcile_move_failure_is_not_fatal(self, engine, host, store):
        await engine.add(1)
        await engine.add(2)
        host.failing_moves.add(1)

        assert await engine.reconcile_on_activation(4) == 1
        assert host.moves == [(2, 4)]
        assert await store.snapshot_sticky() == frozenset({1, 2})


class TestActiveWorkspaceLookup:
    """Test the active workspace is only queried when a move needs it."""

    @pytest.mark.asyncio
    async def test_toggle_off_without_active_workspace(self, engine, host):
        await engine.toggle_by_label("kitty")
        host.active = None

        assert await engine.toggle_by_label("kitty") is False
        assert await engine.list_sticky() == set()

    @pytest.mark.asyncio
    async def test_toggle_on_without_active_workspace(self, engine, host, store):
        host.active = None

        with pytest.raises(NoActiveContext):
            await engine.toggle_by_label("kitty")

        assert await store.classify(2) == Membership.ABSENT
        assert host.moves == []

    @pytest.mark.asyncio
    async def test_toggle_stage_stages_without_active_workspace(self, engine, host):
        await engine.add(3)
        host.active = None

        assert await engine.toggle_stage_by_label("mpv") is None
        assert host.moves == [(3, "stage")]

    @pytest.mark.asyncio
    async def test_toggle_stage_unstages_to_active_workspace(self, engine, host):
        await engine.add(3)
        await engine.toggle_stage_by_label("mpv")
        host.active = 8

        assert await engine.toggle_stage_by_title("video") == 8
        assert host.moves == [(3, "stage"), (3, 8)]


class TestConcurrentOperations:
    """Test overlapping operations whose niri moves interleave."""

    @staticmethod
    async def release(host, turns=20):
        for _ in range(turns):
            await asyncio.sleep(0)
        host.gate.set()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(5))
    async def test_sets_stay_disjoint(self, suspending_engine, suspending_host, store, seed):
        engine = suspending_engine
        for window_id in (1, 2, 3):
            await engine.add(window_id)

        operations = [
            engine.stage(1),
            engine.stage(2),
            engine.toggle_by_label("kitty"),
            engine.toggle_by_title("Firefox"),
            engine.remove(3),
            engine.stage_all(),
            engine.unstage_all(9),
            engine.unstage(1, 9),
            engine.toggle_stage_by_label("mpv", 9),
        ]
        random.Random(seed).shuffle(operations)
        # Scheduled first, so at least one move is parked on the gate
        operations.insert(0, engine.stage(1))

        results = await asyncio.gather(
            *operations, self.release(suspending_host), return_exceptions=True
        )

        for result in results:
            assert not isinstance(result, Exception) or isinstance(result, StickyError), result
        await assert_disjoint(store)
        assert suspending_host.locks_held_during_move
        assert not any(suspending_host.locks_held_during_move)

    @pytest.mark.asyncio
    async def test_rollbacks_interleaved_with_commits(self, suspending_engine, suspending_host,
                                                      store):
        engine = suspending_engine
        for window_id in (1, 2, 3):
            await engine.add(window_id)
        suspending_host.failing_moves.add(2)

        await asyncio.gather(
            engine.stage(2),
            engine.stage_all(),
            engine.toggle_by_label("kitty"),
            engine.toggle_stage_by_label("kitty", 9),
            self.release(suspending_host),
            return_exceptions=True,
        )

        await assert_disjoint(store)
        assert not any(suspending_host.locks_held_during_move)
        # Every move of window 2 failed, so it never reached the staged set
        assert 2 not in await store.snapshot_staged()
