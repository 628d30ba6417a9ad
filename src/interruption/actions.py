"""Mapping from notification kind to lifecycle action."""

from __future__ import annotations

from .models import Action, NotificationKind

# Kinds that remove the claim. Everything else is informational.
_REMOVAL_KINDS = frozenset(
    {
        NotificationKind.SCHEDULED_CHANGE,
        NotificationKind.SPOT_INTERRUPTION,
        NotificationKind.INSTANCE_STOPPED,
        NotificationKind.INSTANCE_TERMINATED,
    }
)


def resolve_action(kind: NotificationKind | str) -> Action:
    """Resolve the action for a notification kind.

    Total over its input: values that are not a known kind resolve to
    NO_ACTION.

    Args:
        kind: Notification kind or its string value.

    Returns:
        EVACUATE_AND_REMOVE for disruptive kinds, NO_ACTION otherwise.
    """
    try:
        kind = NotificationKind(kind)
    except ValueError:
        return Action.NO_ACTION

    if kind in _REMOVAL_KINDS:
        return Action.EVACUATE_AND_REMOVE
    return Action.NO_ACTION
