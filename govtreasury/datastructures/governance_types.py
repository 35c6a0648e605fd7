"""
Governance type definitions.

Enums and immutable records for the proposal lifecycle: configuration,
vote tallies, receipts and the stored core of a proposal. A proposal's state
is never stored; it is derived by ``Governor.state`` from these records,
the current block and the timelock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from hypothesis import strategies as st

from .type_aliases import (
    Address,
    BlockNumber,
    Calldata,
    DescriptionHash,
    DurationBlocks,
    OperationId,
    Percentage,
    ProposalId,
    Timestamp,
    TokenAmount,
    VotingWeight,
    canonical_json,
    hash_bytes,
)


class ProposalState(IntEnum):
    """Lifecycle states, numbered like the conventional on-chain governor."""

    PENDING = 0
    ACTIVE = 1
    CANCELED = 2
    DEFEATED = 3
    SUCCEEDED = 4
    QUEUED = 5
    EXPIRED = 6
    EXECUTED = 7

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        ProposalState.CANCELED,
        ProposalState.DEFEATED,
        ProposalState.EXPIRED,
        ProposalState.EXECUTED,
    }
)


class VoteSupport(IntEnum):
    """Vote options."""

    AGAINST = 0
    FOR = 1
    ABSTAIN = 2


@dataclass(frozen=True, slots=True)
class GovernorConfig:
    """Parameters of the proposal engine."""

    voting_delay: DurationBlocks = 7200  # 1 day at 12s blocks
    voting_period: DurationBlocks = 50400  # 1 week at 12s blocks
    quorum_percentage: Percentage = 4
    proposal_threshold: VotingWeight = 0
    grace_period_blocks: DurationBlocks = 100800  # 0 disables expiry

    def __post_init__(self) -> None:
        """Validate governor configuration."""
        if self.voting_delay < 0:
            raise ValueError("Voting delay cannot be negative")
        if self.voting_period <= 0:
            raise ValueError("Voting period must be positive")
        if not (0 <= self.quorum_percentage <= 100):
            raise ValueError("Quorum percentage must be between 0 and 100")
        if self.proposal_threshold < 0:
            raise ValueError("Proposal threshold cannot be negative")
        if self.grace_period_blocks < 0:
            raise ValueError("Grace period cannot be negative")

    def to_dict(self) -> dict[str, int]:
        return {
            "voting_delay": self.voting_delay,
            "voting_period": self.voting_period,
            "quorum_percentage": self.quorum_percentage,
            "proposal_threshold": self.proposal_threshold,
            "grace_period_blocks": self.grace_period_blocks,
        }


@dataclass(frozen=True, slots=True)
class ProposalVotes:
    """The three vote accumulators of a proposal."""

    against_votes: VotingWeight = 0
    for_votes: VotingWeight = 0
    abstain_votes: VotingWeight = 0

    def __post_init__(self) -> None:
        """Validate vote tallies."""
        if min(self.against_votes, self.for_votes, self.abstain_votes) < 0:
            raise ValueError("Vote counts cannot be negative")

    @property
    def turnout(self) -> VotingWeight:
        return self.for_votes + self.against_votes + self.abstain_votes

    def add(self, support: VoteSupport, weight: VotingWeight) -> ProposalVotes:
        """Return tallies with ``weight`` added to the ``support`` accumulator."""
        if weight < 0:
            raise ValueError("Vote weight cannot be negative")
        return ProposalVotes(
            against_votes=self.against_votes
            + (weight if support == VoteSupport.AGAINST else 0),
            for_votes=self.for_votes + (weight if support == VoteSupport.FOR else 0),
            abstain_votes=self.abstain_votes
            + (weight if support == VoteSupport.ABSTAIN else 0),
        )

    def quorum_reached(self, quorum: VotingWeight) -> bool:
        return self.turnout >= quorum

    def vote_succeeded(self) -> bool:
        # Ties go against the proposer.
        return self.for_votes > self.against_votes

    def to_dict(self) -> dict[str, int]:
        return {
            "against_votes": self.against_votes,
            "for_votes": self.for_votes,
            "abstain_votes": self.abstain_votes,
        }


@dataclass(frozen=True, slots=True)
class VoteReceipt:
    """Record of a single cast vote."""

    voter: Address
    support: VoteSupport
    weight: VotingWeight
    reason: str = ""
    cast_at_block: BlockNumber = 0

    def __post_init__(self) -> None:
        """Validate receipt."""
        if not self.voter:
            raise ValueError("Voter cannot be empty")
        if self.weight < 0:
            raise ValueError("Vote weight cannot be negative")


@dataclass(frozen=True, slots=True)
class ProposalCore:
    """Stored portion of a proposal; the lifecycle state is derived."""

    proposal_id: ProposalId
    proposer: Address
    targets: tuple[Address, ...]
    values: tuple[TokenAmount, ...]
    calldatas: tuple[Calldata, ...]
    description: str
    description_hash: DescriptionHash
    snapshot_block: BlockNumber
    deadline_block: BlockNumber
    created_at: Timestamp = 0
    votes: ProposalVotes = field(default_factory=ProposalVotes)
    receipts: dict[Address, VoteReceipt] = field(default_factory=dict)
    operation_id: OperationId | None = None
    eta: Timestamp | None = None
    executed: bool = False
    canceled: bool = False

    def __post_init__(self) -> None:
        """Validate proposal core."""
        if not self.proposal_id:
            raise ValueError("Proposal ID cannot be empty")
        if not self.proposer:
            raise ValueError("Proposer cannot be empty")
        if not self.targets:
            raise ValueError("Proposal must contain at least one call")
        if not (len(self.targets) == len(self.values) == len(self.calldatas)):
            raise ValueError("Proposal call arrays must have equal length")
        if self.deadline_block < self.snapshot_block:
            raise ValueError("Deadline must not precede snapshot")

    def has_voted(self, account: Address) -> bool:
        return account in self.receipts

    @property
    def weight_block(self) -> BlockNumber:
        """Block whose closing balances fix voting weight and quorum supply.

        Voting opens at the snapshot block, so anything written during that
        block must not count.
        """
        return self.snapshot_block - 1

    @property
    def is_queued(self) -> bool:
        return self.operation_id is not None

    def with_vote(self, receipt: VoteReceipt) -> ProposalCore:
        """Return proposal with ``receipt`` tallied and recorded."""
        receipts = dict(self.receipts)
        receipts[receipt.voter] = receipt
        return self._replace(
            votes=self.votes.add(receipt.support, receipt.weight), receipts=receipts
        )

    def with_queued(self, operation_id: OperationId, eta: Timestamp) -> ProposalCore:
        return self._replace(operation_id=operation_id, eta=eta)

    def with_executed(self) -> ProposalCore:
        return self._replace(executed=True)

    def with_canceled(self) -> ProposalCore:
        return self._replace(canceled=True)

    def _replace(self, **changes: Any) -> ProposalCore:
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        data.update(changes)
        return ProposalCore(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "proposer": self.proposer,
            "targets": list(self.targets),
            "values": list(self.values),
            "calldatas": [calldata.hex() for calldata in self.calldatas],
            "description": self.description,
            "description_hash": self.description_hash,
            "snapshot_block": self.snapshot_block,
            "deadline_block": self.deadline_block,
            "created_at": self.created_at,
            "votes": self.votes.to_dict(),
            "voters": sorted(self.receipts),
            "operation_id": self.operation_id,
            "eta": self.eta,
            "executed": self.executed,
            "canceled": self.canceled,
        }


def hash_proposal(
    targets: tuple[Address, ...] | list[Address],
    values: tuple[TokenAmount, ...] | list[TokenAmount],
    calldatas: tuple[Calldata, ...] | list[Calldata],
    description_hash: DescriptionHash,
) -> ProposalId:
    """Deterministic proposal id; identical inputs always yield the same id."""
    return hash_bytes(
        canonical_json(
            {
                "targets": list(targets),
                "values": [int(value) for value in values],
                "calldatas": [bytes(calldata).hex() for calldata in calldatas],
                "description_hash": description_hash,
            }
        )
    )


# Hypothesis strategies for property-based testing


def governor_config_strategy() -> st.SearchStrategy[GovernorConfig]:
    """Generate valid GovernorConfig instances for testing."""
    return st.builds(
        GovernorConfig,
        voting_delay=st.integers(min_value=0, max_value=100),
        voting_period=st.integers(min_value=1, max_value=500),
        quorum_percentage=st.integers(min_value=0, max_value=100),
        proposal_threshold=st.integers(min_value=0, max_value=10**6),
        grace_period_blocks=st.integers(min_value=0, max_value=1000),
    )


def proposal_votes_strategy() -> st.SearchStrategy[ProposalVotes]:
    """Generate vote tallies for testing."""
    weights = st.integers(min_value=0, max_value=10**27)
    return st.builds(
        ProposalVotes, against_votes=weights, for_votes=weights, abstain_votes=weights
    )
