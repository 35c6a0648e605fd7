"""
Governance proposal engine.

Proposals move through Pending, Active, then Succeeded or Defeated, then
Queued in the timelock and finally Executed. Canceled and Expired are the
other terminal exits. The state of a proposal is never stored; ``state``
derives it from the stored ``ProposalCore``, the current block, the voting
ledger (for quorum) and the timelock (for queued operations).

The governor never runs calls itself. ``execute`` checks the lifecycle and
marks the timelock operation done, then hands the decoded calls back to the
composed system, which applies them in the same atomic step.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.errors import AuthorizationError, InputValidationError, StateError
from ..core.logging import component_logger
from .access_control import CANCELLER_ROLE, RoleRegistry
from .actions import Call, arrays_to_calls
from .governance_types import (
    GovernorConfig,
    ProposalCore,
    ProposalState,
    ProposalVotes,
    VoteReceipt,
    VoteSupport,
    hash_proposal,
)
from .timelock import Timelock
from .type_aliases import (
    EMPTY_HASH,
    Address,
    BlockNumber,
    Calldata,
    DescriptionHash,
    Percentage,
    ProposalId,
    Timestamp,
    TokenAmount,
    VotingWeight,
    hash_bytes,
    hash_description,
)
from .voting_ledger import Checkpoints, VotesLedger

log = component_logger("governor")

GOVERNOR_PARAMETERS = frozenset(
    {
        "voting_delay",
        "voting_period",
        "quorum_percentage",
        "proposal_threshold",
        "grace_period_blocks",
    }
)


def timelock_salt(governor: Address, description_hash: DescriptionHash) -> str:
    """Salt the governor uses when scheduling a proposal in the timelock."""
    return hash_bytes(f"{governor}:{description_hash}".encode())


@dataclass(frozen=True, slots=True)
class Governor:
    """Immutable governor state: configuration plus every proposal ever made."""

    address: Address
    timelock_address: Address
    name: str = "DeFi Governor"
    config: GovernorConfig = field(default_factory=GovernorConfig)
    proposals: dict[ProposalId, ProposalCore] = field(default_factory=dict)
    roles: RoleRegistry = field(default_factory=RoleRegistry)
    quorum_history: Checkpoints = field(default_factory=Checkpoints)

    def __post_init__(self) -> None:
        """Validate governor."""
        if not self.address:
            raise ValueError("Governor address cannot be empty")
        if not self.timelock_address:
            raise ValueError("Timelock address cannot be empty")
        if not self.name:
            raise ValueError("Governor name cannot be empty")

    @classmethod
    def create(
        cls,
        address: Address,
        timelock_address: Address,
        config: GovernorConfig,
        block: BlockNumber,
        name: str = "DeFi Governor",
        cancellers: Sequence[Address] = (),
    ) -> Governor:
        return cls(
            address=address,
            timelock_address=timelock_address,
            name=name,
            config=config,
            roles=RoleRegistry.with_grants(
                (CANCELLER_ROLE, canceller) for canceller in cancellers
            ),
            quorum_history=Checkpoints().push(block, config.quorum_percentage),
        )

    # Views

    def get_proposal(self, proposal_id: ProposalId) -> ProposalCore:
        proposal = self.proposals.get(proposal_id)
        if proposal is None:
            raise StateError("Governor: unknown proposal id")
        return proposal

    def hash_proposal(
        self,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
    ) -> ProposalId:
        return hash_proposal(targets, values, calldatas, description_hash)

    def quorum_numerator(self, block: BlockNumber) -> Percentage:
        if not len(self.quorum_history):
            return self.config.quorum_percentage
        return self.quorum_history.upper_lookup(block)

    def quorum(self, block: BlockNumber, votes: VotesLedger) -> VotingWeight:
        """Minimum turnout at ``block``: total voting supply times the quorum percentage."""
        return votes.get_past_total_supply(block) * self.quorum_numerator(block) // 100

    def proposal_votes(self, proposal_id: ProposalId) -> ProposalVotes:
        return self.get_proposal(proposal_id).votes

    def proposal_snapshot(self, proposal_id: ProposalId) -> BlockNumber:
        return self.get_proposal(proposal_id).snapshot_block

    def proposal_deadline(self, proposal_id: ProposalId) -> BlockNumber:
        return self.get_proposal(proposal_id).deadline_block

    def proposal_proposer(self, proposal_id: ProposalId) -> Address:
        return self.get_proposal(proposal_id).proposer

    def proposal_eta(self, proposal_id: ProposalId) -> Timestamp | None:
        return self.get_proposal(proposal_id).eta

    def has_voted(self, proposal_id: ProposalId, account: Address) -> bool:
        return self.get_proposal(proposal_id).has_voted(account)

    def state(
        self,
        proposal_id: ProposalId,
        block: BlockNumber,
        votes: VotesLedger,
        timelock: Timelock,
    ) -> ProposalState:
        """Derive the lifecycle state of a proposal at ``block``."""
        proposal = self.get_proposal(proposal_id)

        if proposal.executed:
            return ProposalState.EXECUTED
        if proposal.canceled:
            return ProposalState.CANCELED
        if block < proposal.snapshot_block:
            return ProposalState.PENDING
        if block <= proposal.deadline_block:
            return ProposalState.ACTIVE

        quorum = self.quorum(proposal.weight_block, votes)
        if not (proposal.votes.quorum_reached(quorum) and proposal.votes.vote_succeeded()):
            return ProposalState.DEFEATED

        if proposal.operation_id is None:
            grace = self.config.grace_period_blocks
            if grace and block > proposal.deadline_block + grace:
                return ProposalState.EXPIRED
            return ProposalState.SUCCEEDED

        # Queued: the timelock decides between Queued, Executed and Canceled.
        if timelock.is_operation_done(proposal.operation_id):
            return ProposalState.EXECUTED
        if not timelock.is_operation_pending(proposal.operation_id):
            return ProposalState.CANCELED
        return ProposalState.QUEUED

    # Lifecycle

    def propose(
        self,
        proposer: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description: str,
        votes: VotesLedger,
        block: BlockNumber,
        now: Timestamp,
    ) -> tuple[Governor, ProposalCore]:
        """Create a proposal whose voting opens after the voting delay."""
        weight = votes.get_votes(proposer)
        if weight < self.config.proposal_threshold:
            raise AuthorizationError(
                f"Governor: proposer votes below proposal threshold "
                f"({weight} < {self.config.proposal_threshold})"
            )
        arrays_to_calls(targets, values, calldatas)

        description_hash = hash_description(description)
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        if proposal_id in self.proposals:
            raise StateError("Governor: proposal already exists")

        snapshot = block + self.config.voting_delay
        proposal = ProposalCore(
            proposal_id=proposal_id,
            proposer=proposer,
            targets=tuple(targets),
            values=tuple(int(value) for value in values),
            calldatas=tuple(bytes(calldata) for calldata in calldatas),
            description=description,
            description_hash=description_hash,
            snapshot_block=snapshot,
            deadline_block=snapshot + self.config.voting_period,
            created_at=now,
        )
        proposals = dict(self.proposals)
        proposals[proposal_id] = proposal
        log.info(
            "Proposal {} created by {} (voting blocks {}..{})",
            proposal_id[:18],
            proposer,
            proposal.snapshot_block,
            proposal.deadline_block,
        )
        return self._replace(proposals=proposals), proposal

    def cast_vote(
        self,
        voter: Address,
        proposal_id: ProposalId,
        support: int,
        votes: VotesLedger,
        timelock: Timelock,
        block: BlockNumber,
        reason: str = "",
    ) -> tuple[Governor, VoteReceipt]:
        """Record a vote with the voter's weight as of the block before the snapshot."""
        try:
            support = VoteSupport(support)
        except ValueError as e:
            raise InputValidationError(
                "GovernorVotingSimple: invalid value for enum VoteType"
            ) from e

        if self.state(proposal_id, block, votes, timelock) != ProposalState.ACTIVE:
            raise StateError("Governor: vote not currently active")
        proposal = self.get_proposal(proposal_id)
        if proposal.has_voted(voter):
            raise StateError("GovernorVotingSimple: vote already cast")

        receipt = VoteReceipt(
            voter=voter,
            support=support,
            weight=votes.get_past_votes(voter, proposal.weight_block),
            reason=reason,
            cast_at_block=block,
        )
        proposals = dict(self.proposals)
        proposals[proposal_id] = proposal.with_vote(receipt)
        log.debug(
            "Vote {} on {} by {} with weight {}",
            support.name,
            proposal_id[:18],
            voter,
            receipt.weight,
        )
        return self._replace(proposals=proposals), receipt

    def queue(
        self,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
        votes: VotesLedger,
        timelock: Timelock,
        block: BlockNumber,
        now: Timestamp,
    ) -> tuple[Governor, Timelock, ProposalCore]:
        """Schedule a succeeded proposal in the timelock with its minimum delay."""
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        if self.state(proposal_id, block, votes, timelock) != ProposalState.SUCCEEDED:
            raise StateError("Governor: proposal not successful")

        timelock, operation = timelock.schedule_batch(
            self.address,
            targets,
            values,
            calldatas,
            EMPTY_HASH,
            timelock_salt(self.address, description_hash),
            timelock.min_delay,
            now,
        )
        proposal = self.get_proposal(proposal_id).with_queued(
            operation.operation_id, operation.ready_timestamp
        )
        proposals = dict(self.proposals)
        proposals[proposal_id] = proposal
        log.info(
            "Proposal {} queued as operation {} (eta {})",
            proposal_id[:18],
            operation.operation_id[:18],
            operation.ready_timestamp,
        )
        return self._replace(proposals=proposals), timelock, proposal

    def execute(
        self,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
        votes: VotesLedger,
        timelock: Timelock,
        block: BlockNumber,
        now: Timestamp,
    ) -> tuple[Governor, Timelock, tuple[Call, ...]]:
        """Mark a queued, ready proposal executed and return the calls to apply.

        The returned states are only valid if every call then succeeds; the
        caller discards them otherwise, which leaves the proposal Queued.
        """
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        if self.state(proposal_id, block, votes, timelock) != ProposalState.QUEUED:
            raise StateError("Governor: proposal not queued")

        calls = arrays_to_calls(targets, values, calldatas)
        timelock, _ = timelock.execute_batch(
            self.address,
            targets,
            values,
            calldatas,
            EMPTY_HASH,
            timelock_salt(self.address, description_hash),
            now,
        )
        proposals = dict(self.proposals)
        proposals[proposal_id] = self.get_proposal(proposal_id).with_executed()
        return self._replace(proposals=proposals), timelock, calls

    def cancel(
        self,
        caller: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
        votes: VotesLedger,
        timelock: Timelock,
        block: BlockNumber,
    ) -> tuple[Governor, ProposalCore]:
        """Cancel a Pending or Active proposal; proposer or canceller role only."""
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        proposal = self.get_proposal(proposal_id)
        if caller != proposal.proposer and not self.roles.has_role(CANCELLER_ROLE, caller):
            raise AuthorizationError(f"Governor: {caller} cannot cancel this proposal")

        current = self.state(proposal_id, block, votes, timelock)
        if current not in (ProposalState.PENDING, ProposalState.ACTIVE):
            raise StateError(f"Governor: cannot cancel a {current.name.lower()} proposal")

        proposal = proposal.with_canceled()
        proposals = dict(self.proposals)
        proposals[proposal_id] = proposal
        log.info("Proposal {} canceled by {}", proposal_id[:18], caller)
        return self._replace(proposals=proposals), proposal

    # Governance-only configuration

    def update_parameter(
        self, caller: Address, parameter: str, value: int, block: BlockNumber
    ) -> Governor:
        """Change a voting parameter; only the timelock may do this."""
        if caller != self.timelock_address:
            raise AuthorizationError("Governor: onlyGovernance")
        if parameter not in GOVERNOR_PARAMETERS:
            raise InputValidationError(f"Unknown governor parameter: {parameter}")

        settings = self.config.to_dict()
        settings[parameter] = value
        try:
            config = GovernorConfig(**settings)
        except ValueError as e:
            raise InputValidationError(str(e)) from e

        quorum_history = self.quorum_history
        if parameter == "quorum_percentage":
            quorum_history = quorum_history.push(block, value)
        log.info("Governor parameter {} set to {}", parameter, value)
        return self._replace(config=config, quorum_history=quorum_history)

    def grant_role(self, caller: Address, role: str, account: Address) -> Governor:
        if caller != self.timelock_address:
            raise AuthorizationError("Governor: onlyGovernance")
        return self._replace(roles=self.roles.grant(role, account))

    def revoke_role(self, caller: Address, role: str, account: Address) -> Governor:
        if caller != self.timelock_address:
            raise AuthorizationError("Governor: onlyGovernance")
        return self._replace(roles=self.roles.revoke(role, account))

    def _replace(self, **changes: Any) -> Governor:
        data = {
            "address": self.address,
            "timelock_address": self.timelock_address,
            "name": self.name,
            "config": self.config,
            "proposals": self.proposals,
            "roles": self.roles,
            "quorum_history": self.quorum_history,
        }
        data.update(changes)
        return Governor(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "timelock_address": self.timelock_address,
            "name": self.name,
            "config": self.config.to_dict(),
            "roles": self.roles.to_dict(),
            "proposals": {
                proposal_id: proposal.to_dict()
                for proposal_id, proposal in self.proposals.items()
            },
        }
