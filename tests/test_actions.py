"""Tests for action resolution."""

from __future__ import annotations

import pytest

from interruption.actions import resolve_action
from interruption.models import Action, NotificationKind


class TestResolveAction:
    """Tests for resolve_action."""

    @pytest.mark.parametrize(
        "kind",
        [
            NotificationKind.SCHEDULED_CHANGE,
            NotificationKind.SPOT_INTERRUPTION,
            NotificationKind.INSTANCE_STOPPED,
            NotificationKind.INSTANCE_TERMINATED,
        ],
    )
    def test_disruptive_kinds_remove(self, kind: NotificationKind) -> None:
        """Test that disruptive kinds evacuate and remove."""
        assert resolve_action(kind) == Action.EVACUATE_AND_REMOVE

    @pytest.mark.parametrize(
        "kind",
        [NotificationKind.REBALANCE_RECOMMENDATION, NotificationKind.NO_OP],
    )
    def test_informational_kinds_do_nothing(self, kind: NotificationKind) -> None:
        """Test that informational kinds take no action."""
        assert resolve_action(kind) == Action.NO_ACTION

    def test_every_kind_resolves(self) -> None:
        """Test that every kind resolves to exactly one known action."""
        for kind in NotificationKind:
            assert resolve_action(kind) in set(Action)

    def test_string_value_accepted(self) -> None:
        """Test that raw kind values resolve like the enum."""
        assert resolve_action("SpotInterruption") == Action.EVACUATE_AND_REMOVE

    @pytest.mark.parametrize("kind", ["CapacityReservationExpiring", "", "spotinterruption"])
    def test_unknown_kinds_do_nothing(self, kind: str) -> None:
        """Test that unrecognized kinds take no action."""
        assert resolve_action(kind) == Action.NO_ACTION
