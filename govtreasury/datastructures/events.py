"""
Governance and treasury event records.

Every successful state transition emits one immutable event. Events are the
read model consumed by observers (the CLI, the sqlite event store).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .type_aliases import Address, BlockNumber, Timestamp, canonical_json, hash_bytes


class EventType(Enum):
    """Kinds of emitted events."""

    PROPOSAL_CREATED = "ProposalCreated"
    VOTE_CAST = "VoteCast"
    PROPOSAL_QUEUED = "ProposalQueued"
    PROPOSAL_EXECUTED = "ProposalExecuted"
    PROPOSAL_CANCELED = "ProposalCanceled"
    CALL_SCHEDULED = "CallScheduled"
    CALL_EXECUTED = "CallExecuted"
    OPERATION_CANCELLED = "Cancelled"
    MIN_DELAY_CHANGE = "MinDelayChange"
    FUNDS_DEPOSITED = "FundsDeposited"
    FUNDS_WITHDRAWN = "FundsWithdrawn"
    ASSET_ADDED = "AssetAdded"
    ASSET_STATUS_CHANGED = "AssetStatusChanged"
    DAILY_LIMIT_UPDATED = "DailyWithdrawalLimitUpdated"
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"
    PARAMETER_UPDATED = "ParameterUpdated"
    DELEGATE_CHANGED = "DelegateChanged"
    TRANSFER = "Transfer"
    ADMINISTRATION_HANDED_OVER = "AdministrationHandedOver"


@dataclass(frozen=True, slots=True)
class GovernanceEvent:
    """Single emitted event."""

    event_type: EventType
    emitter: Address
    block_number: BlockNumber
    timestamp: Timestamp
    args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate event."""
        if not self.emitter:
            raise ValueError("Event emitter cannot be empty")
        if self.block_number < 0:
            raise ValueError("Event block number cannot be negative")

    def get_hash(self) -> str:
        return hash_bytes(canonical_json(self.to_dict()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event_type.value,
            "emitter": self.emitter,
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "args": self.args,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GovernanceEvent:
        return cls(
            event_type=EventType(data["event"]),
            emitter=data["emitter"],
            block_number=int(data["block_number"]),
            timestamp=int(data["timestamp"]),
            args=dict(data.get("args", {})),
        )
