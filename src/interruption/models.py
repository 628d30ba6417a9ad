"""Pydantic models for notifications and the cluster objects they act on.

These models provide:
1. Typed notifications produced once per queue message
2. Validation at the boundary (a notification that would act on nothing fails here)
3. Read-only views of claims and nodes owned by the cluster API
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# Well-known labels
# =============================================================================

LABEL_TOPOLOGY_ZONE = "topology.kubernetes.io/zone"
LABEL_INSTANCE_TYPE = "node.kubernetes.io/instance-type"
LABEL_NODE_POOL = "karpenter.sh/nodepool"
LABEL_CAPACITY_TYPE = "karpenter.sh/capacity-type"


class NotificationKind(str, Enum):
    """Kinds of infrastructure notifications."""

    SCHEDULED_CHANGE = "ScheduledChange"
    SPOT_INTERRUPTION = "SpotInterruption"
    INSTANCE_STOPPED = "InstanceStopped"
    INSTANCE_TERMINATED = "InstanceTerminated"
    REBALANCE_RECOMMENDATION = "RebalanceRecommendation"
    NO_OP = "NoOp"


class Action(str, Enum):
    """Lifecycle decision derived from a notification kind."""

    EVACUATE_AND_REMOVE = "EvacuateAndRemove"
    NO_ACTION = "NoAction"


class CapacityType(str, Enum):
    """Capacity markets a claim can be launched into."""

    SPOT = "spot"
    ON_DEMAND = "on-demand"
    RESERVED = "reserved"


# =============================================================================
# Notification
# =============================================================================


class Notification(BaseModel):
    """A classified queue message.

    start_time is when the provider says the event happened. It feeds the
    latency histogram only and never orders processing.
    """

    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    instance_ids: tuple[str, ...] = ()
    start_time: datetime | None = None

    # Envelope metadata, kept for logging
    message_id: str = ""
    source: str = ""
    detail_type: str = ""

    @field_validator("start_time")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @field_validator("instance_ids")
    @classmethod
    def reject_blank_ids(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if any(not instance_id.strip() for instance_id in v):
            raise ValueError("instance ids cannot be blank")
        return v

    @model_validator(mode="after")
    def require_instances_for_actionable_kinds(self) -> Notification:
        if self.kind != NotificationKind.NO_OP and not self.instance_ids:
            raise ValueError(f"{self.kind.value} notification must name at least one instance")
        return self

    @classmethod
    def noop(cls, message_id: str = "", source: str = "", detail_type: str = "") -> Notification:
        """Build a NoOp notification for an event that needs no handling."""
        return cls(
            kind=NotificationKind.NO_OP,
            message_id=message_id,
            source=source,
            detail_type=detail_type,
        )


# =============================================================================
# Cluster objects
# =============================================================================


class ComputeClaim(BaseModel):
    """The cluster's record of a requested machine, bound to one instance."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    instance_id: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    # Set once removal has been requested
    deletion_timestamp: datetime | None = None

    @property
    def is_deleting(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def zone(self) -> str:
        return self.labels.get(LABEL_TOPOLOGY_ZONE, "")

    @property
    def instance_type(self) -> str:
        return self.labels.get(LABEL_INSTANCE_TYPE, "")

    @property
    def node_pool(self) -> str:
        return self.labels.get(LABEL_NODE_POOL, "")

    @property
    def capacity_type(self) -> str:
        return self.labels.get(LABEL_CAPACITY_TYPE, "")


class ClusterNode(BaseModel):
    """The registration object of a joined machine."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    instance_id: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
