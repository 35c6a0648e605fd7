"""
govtreasury datastructures module.

Immutable implementations of the governance and treasury components.

Key datastructures:
- VotesLedger: Balances, delegation and block-checkpointed voting weight
- Governor: Proposal lifecycle with derived states
- Timelock: Delayed, at-most-once execution of approved operations
- Treasury: Asset registry and rolling daily withdrawal guard
- RoleRegistry: Role to principal capability map
- Actions: Closed set of calls a proposal may make
"""

from __future__ import annotations

from .access_control import (
    AI_CONTROLLER_ROLE,
    CANCELLER_ROLE,
    DEFAULT_ADMIN_ROLE,
    EXECUTOR_ROLE,
    GOVERNOR_ROLE,
    PROPOSER_ROLE,
    RoleRegistry,
)
from .actions import (
    Action,
    AllowlistedCall,
    Call,
    ParameterUpdate,
    RoleUpdate,
    TreasuryWithdrawal,
    decode_action,
    encode_action,
)
from .chain import ChainClock
from .event_store import EventStore
from .events import EventType, GovernanceEvent
from .governance_types import (
    GovernorConfig,
    ProposalCore,
    ProposalState,
    ProposalVotes,
    VoteReceipt,
    VoteSupport,
    hash_proposal,
)
from .governor import Governor
from .timelock import Timelock, TimelockOperation
from .treasury import Asset, Treasury, WithdrawalLedger
from .voting_ledger import Checkpoints, VotesLedger

__all__ = [
    "AI_CONTROLLER_ROLE",
    "CANCELLER_ROLE",
    "DEFAULT_ADMIN_ROLE",
    "EXECUTOR_ROLE",
    "GOVERNOR_ROLE",
    "PROPOSER_ROLE",
    "Action",
    "AllowlistedCall",
    "Asset",
    "Call",
    "ChainClock",
    "Checkpoints",
    "EventStore",
    "EventType",
    "GovernanceEvent",
    "Governor",
    "GovernorConfig",
    "ParameterUpdate",
    "ProposalCore",
    "ProposalState",
    "ProposalVotes",
    "RoleRegistry",
    "RoleUpdate",
    "Timelock",
    "TimelockOperation",
    "Treasury",
    "TreasuryWithdrawal",
    "VoteReceipt",
    "VoteSupport",
    "VotesLedger",
    "WithdrawalLedger",
    "decode_action",
    "encode_action",
    "hash_proposal",
]
