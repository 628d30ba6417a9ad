"""Classification of raw queue payloads into notifications.

Payloads are EventBridge-style envelopes:

    {
        "version": "0",
        "id": "...",
        "detail-type": "EC2 Spot Instance Interruption Warning",
        "source": "aws.ec2",
        "time": "2024-05-01T12:00:00Z",
        "region": "us-east-1",
        "resources": [...],
        "detail": {...}
    }

A parser is registered per (source, detail-type, version). Envelopes with no
registered parser classify as NoOp so that new event types never stall the
queue. Payloads that are not a valid envelope, or whose detail does not
match a registered parser, are classification errors.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import Notification, NotificationKind


class ClassificationError(Exception):
    """Raised when a queue payload cannot be classified."""

    pass


# =============================================================================
# Envelope
# =============================================================================


class EventMetadata(BaseModel):
    """Envelope fields shared by every event."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: str = ""
    id: str = ""
    detail_type: str = Field("", alias="detail-type")
    source: str = ""
    account: str = ""
    time: datetime | None = None
    region: str = ""
    resources: list[str] = Field(default_factory=list)
    detail: dict[str, Any] = Field(default_factory=dict)

    def noop(self) -> Notification:
        return Notification.noop(
            message_id=self.id, source=self.source, detail_type=self.detail_type
        )

    def notification(self, kind: NotificationKind, instance_ids: Iterable[str]) -> Notification:
        return Notification(
            kind=kind,
            instance_ids=tuple(instance_ids),
            start_time=self.time,
            message_id=self.id,
            source=self.source,
            detail_type=self.detail_type,
        )


# =============================================================================
# Detail shapes
# =============================================================================


class _Detail(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class InstanceDetail(_Detail):
    """Detail of spot interruption and rebalance events."""

    instance_id: str = Field(alias="instance-id", min_length=1)
    instance_action: str = Field("", alias="instance-action")


class StateChangeDetail(_Detail):
    """Detail of instance state-change events."""

    instance_id: str = Field(alias="instance-id", min_length=1)
    state: str


class AffectedEntity(_Detail):
    entity_value: str = Field(alias="entityValue", min_length=1)


class HealthDetail(_Detail):
    """Detail of health events."""

    event_arn: str = Field("", alias="eventArn")
    event_type_code: str = Field("", alias="eventTypeCode")
    event_type_category: str = Field(alias="eventTypeCategory")
    service: str
    affected_entities: list[AffectedEntity] = Field(
        default_factory=list, alias="affectedEntities"
    )


# =============================================================================
# Parsers
# =============================================================================

ParseFunc = Callable[[EventMetadata], Notification]

STOPPED_STATES = frozenset({"stopping", "stopped"})
TERMINATED_STATES = frozenset({"shutting-down", "terminated"})


@dataclass(frozen=True)
class EventParserRule:
    """Parser for one (source, detail-type, version) key."""

    source: str
    detail_type: str
    parse: ParseFunc
    version: str = "0"

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source, self.detail_type, self.version)


def parse_scheduled_change(event: EventMetadata) -> Notification:
    detail = HealthDetail.model_validate(event.detail)
    # Only EC2 scheduled changes affect instances
    if detail.service != "EC2" or detail.event_type_category != "scheduledChange":
        return event.noop()
    # Nothing to act on without affected instances
    if not detail.affected_entities:
        return event.noop()
    return event.notification(
        NotificationKind.SCHEDULED_CHANGE,
        (entity.entity_value for entity in detail.affected_entities),
    )


def parse_spot_interruption(event: EventMetadata) -> Notification:
    detail = InstanceDetail.model_validate(event.detail)
    return event.notification(NotificationKind.SPOT_INTERRUPTION, [detail.instance_id])


def parse_rebalance_recommendation(event: EventMetadata) -> Notification:
    detail = InstanceDetail.model_validate(event.detail)
    return event.notification(NotificationKind.REBALANCE_RECOMMENDATION, [detail.instance_id])


def parse_state_change(event: EventMetadata) -> Notification:
    detail = StateChangeDetail.model_validate(event.detail)
    state = detail.state.lower()
    if state in STOPPED_STATES:
        return event.notification(NotificationKind.INSTANCE_STOPPED, [detail.instance_id])
    if state in TERMINATED_STATES:
        return event.notification(NotificationKind.INSTANCE_TERMINATED, [detail.instance_id])
    # pending, running
    return event.noop()


DEFAULT_RULES: tuple[EventParserRule, ...] = (
    EventParserRule("aws.health", "AWS Health Event", parse_scheduled_change),
    EventParserRule("aws.ec2", "EC2 Spot Instance Interruption Warning", parse_spot_interruption),
    EventParserRule(
        "aws.ec2", "EC2 Instance Rebalance Recommendation", parse_rebalance_recommendation
    ),
    EventParserRule("aws.ec2", "EC2 Instance State-change Notification", parse_state_change),
)


class EventParser:
    """Classifies raw payloads using a table of parser rules.

    Extra rules are added on top of DEFAULT_RULES and replace a default rule
    registered under the same key.
    """

    def __init__(self, *rules: EventParserRule) -> None:
        self._rules: dict[tuple[str, str, str], EventParserRule] = {}
        for rule in (*DEFAULT_RULES, *rules):
            self._rules[rule.key] = rule

    def parse(self, body: str | None) -> Notification:
        """Classify a raw payload.

        Args:
            body: Raw message body.

        Returns:
            The notification, NoOp for well-formed events nobody handles.

        Raises:
            ClassificationError: If the body is missing or malformed.
        """
        if body is None:
            raise ClassificationError("message body is missing")
        if not body.strip():
            raise ClassificationError("message body is empty")

        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise ClassificationError(f"message body is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ClassificationError(
                f"message body must be a JSON object, got {type(payload).__name__}"
            )

        try:
            event = EventMetadata.model_validate(payload)
        except ValidationError as e:
            raise ClassificationError(f"unmarshalling the message as metadata: {e}") from e

        rule = self._rules.get((event.source, event.detail_type, event.version))
        if rule is None:
            return event.noop()

        try:
            return rule.parse(event)
        except ValidationError as e:
            raise ClassificationError(
                f"parsing {event.source} '{event.detail_type}' event {event.id}: {e}"
            ) from e


_default_parser = EventParser()


def classify(body: str | None) -> Notification:
    """Classify a raw payload with the default parser rules."""
    return _default_parser.parse(body)
