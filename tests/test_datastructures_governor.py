"""
Tests for the governance proposal engine.

Exercises the derived lifecycle (Pending, Active, Succeeded or Defeated,
Queued, Executed, Canceled, Expired), quorum and majority rules, snapshot
isolation of voting weight and the proposal validation rules.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from govtreasury.core.errors import AuthorizationError, InputValidationError, StateError
from govtreasury.core.system import GovernanceSystem, proposal_arrays
from govtreasury.datastructures.actions import Call, ParameterUpdate
from govtreasury.datastructures.governance_types import (
    GovernorConfig,
    ProposalState,
    VoteSupport,
)
from govtreasury.datastructures.governor import timelock_salt
from govtreasury.datastructures.type_aliases import hash_description
from tests.governance_helpers import (
    ALICE,
    BOB,
    CAROL,
    DAVE,
    DEPLOYER,
    FAST_CONFIG,
    GUARDIAN,
    deploy_fast,
    pass_and_queue,
    pay,
    run_vote,
    with_voters,
)


def parameter_call(system: GovernanceSystem, value: int = 10) -> Call:
    return Call(
        target=system.addresses.governor,
        action=ParameterUpdate(parameter="voting_period", value=value),
    )


class TestProposalCreation:
    """Test propose validation and derived windows."""

    def test_snapshot_and_deadline(self, three_voters: GovernanceSystem):
        block = three_voters.block_number
        system, proposal_id = three_voters.propose_calls(
            ALICE, [parameter_call(three_voters)], "Shorter voting"
        )
        assert system.governor.proposal_snapshot(proposal_id) == block + FAST_CONFIG.voting_delay
        assert system.governor.proposal_deadline(proposal_id) == (
            block + FAST_CONFIG.voting_delay + FAST_CONFIG.voting_period
        )
        assert system.governor.proposal_proposer(proposal_id) == ALICE
        assert system.state(proposal_id) == ProposalState.PENDING

    def test_proposal_id_is_content_hash(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, proposal_id = three_voters.propose_calls(ALICE, calls, "Shorter voting")
        targets, values, calldatas, description_hash = proposal_arrays(calls, "Shorter voting")
        assert proposal_id == system.governor.hash_proposal(
            targets, values, calldatas, description_hash
        )

    def test_duplicate_proposal_rejected(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, _ = three_voters.propose_calls(ALICE, calls, "Shorter voting")
        with pytest.raises(StateError, match="Governor: proposal already exists"):
            system.propose_calls(BOB, calls, "Shorter voting")

    def test_mismatched_arrays_rejected(self, three_voters: GovernanceSystem):
        calldata = parameter_call(three_voters).calldata
        with pytest.raises(InputValidationError, match="Governor: invalid proposal length"):
            three_voters.propose(
                ALICE, [three_voters.addresses.governor], [0, 0], [calldata], "Broken"
            )
        with pytest.raises(InputValidationError, match="Governor: empty proposal"):
            three_voters.propose(ALICE, [], [], [], "Nothing")

    def test_undecodable_calldata_rejected(self, three_voters: GovernanceSystem):
        with pytest.raises(InputValidationError, match="Unknown action"):
            three_voters.propose(
                ALICE,
                [three_voters.addresses.treasury],
                [0],
                [b'{"action":"delegatecall"}'],
                "Arbitrary call",
            )

    def test_non_integer_parameter_value_rejected(self, three_voters: GovernanceSystem):
        calldata = (
            b'{"action":"parameter_update","parameter":"daily_withdrawal_limit","value":"5"}'
        )
        with pytest.raises(InputValidationError, match="must be an integer"):
            three_voters.propose(
                ALICE, [three_voters.addresses.treasury], [0], [calldata], "Stringly limit"
            )
        assert three_voters.governor.proposals == {}

    def test_proposal_threshold(self):
        config = GovernorConfig(
            voting_delay=1, voting_period=5, quorum_percentage=4, proposal_threshold=1_000
        )
        system = GovernanceSystem.deploy(DEPLOYER, config)
        system = with_voters(system, {ALICE: 999, BOB: 1_000})
        with pytest.raises(AuthorizationError, match="below proposal threshold"):
            system.propose_calls(ALICE, [parameter_call(system)], "Too small")
        system, _ = system.propose_calls(BOB, [parameter_call(system)], "Big enough")


class TestVoting:
    """Test vote casting rules."""

    def test_vote_only_while_active(self, three_voters: GovernanceSystem):
        system, proposal_id = three_voters.propose_calls(
            ALICE, [parameter_call(three_voters)], "Shorter voting"
        )
        with pytest.raises(StateError, match="Governor: vote not currently active"):
            system.cast_vote(ALICE, proposal_id, VoteSupport.FOR)

        system = system.mine(FAST_CONFIG.voting_delay)
        assert system.state(proposal_id) == ProposalState.ACTIVE
        system = system.cast_vote(ALICE, proposal_id, VoteSupport.FOR)

        deadline = system.governor.proposal_deadline(proposal_id)
        system = system.mine(deadline - system.block_number)
        assert system.state(proposal_id) == ProposalState.ACTIVE
        system = system.cast_vote(BOB, proposal_id, VoteSupport.FOR)

        system = system.mine()
        with pytest.raises(StateError, match="Governor: vote not currently active"):
            system.cast_vote(CAROL, proposal_id, VoteSupport.FOR)

    def test_no_double_voting(self, three_voters: GovernanceSystem):
        system, proposal_id = three_voters.propose_calls(
            ALICE, [parameter_call(three_voters)], "Shorter voting"
        )
        system = system.mine(FAST_CONFIG.voting_delay).cast_vote(
            ALICE, proposal_id, VoteSupport.FOR
        )
        tallies = system.governor.proposal_votes(proposal_id)
        for support in VoteSupport:
            with pytest.raises(StateError, match="GovernorVotingSimple: vote already cast"):
                system.cast_vote(ALICE, proposal_id, support)
        assert system.governor.proposal_votes(proposal_id) == tallies
        assert system.governor.has_voted(proposal_id, ALICE)
        assert not system.governor.has_voted(proposal_id, BOB)

    def test_invalid_support_rejected(self, three_voters: GovernanceSystem):
        system, proposal_id = three_voters.propose_calls(
            ALICE, [parameter_call(three_voters)], "Shorter voting"
        )
        system = system.mine(FAST_CONFIG.voting_delay)
        with pytest.raises(InputValidationError, match="invalid value for enum VoteType"):
            system.cast_vote(ALICE, proposal_id, 3)

    def test_weight_frozen_at_snapshot(self, three_voters: GovernanceSystem):
        """Tokens moved after the snapshot neither add nor remove votes."""
        system, proposal_id = three_voters.propose_calls(
            ALICE, [parameter_call(three_voters)], "Shorter voting"
        )
        system = system.mine(FAST_CONFIG.voting_delay + 1)
        system = system.transfer(ALICE, DAVE, 1_000_000).delegate(DAVE, DAVE)
        system = system.transfer(BOB, CAROL, 1_000_000)

        system = system.cast_vote(ALICE, proposal_id, VoteSupport.FOR)
        system = system.cast_vote(DAVE, proposal_id, VoteSupport.FOR)
        system = system.cast_vote(CAROL, proposal_id, VoteSupport.AGAINST)

        votes = system.governor.proposal_votes(proposal_id)
        assert votes.for_votes == 1_000_000
        assert votes.against_votes == 1_000_000
        assert system.governor.get_proposal(proposal_id).receipts[DAVE].weight == 0

    def test_moves_inside_snapshot_block_do_not_count(self, three_voters: GovernanceSystem):
        """The same tokens cannot vote twice by moving during the snapshot block."""
        system, proposal_id = three_voters.propose_calls(
            ALICE, [parameter_call(three_voters)], "Shorter voting"
        )
        system = system.mine(FAST_CONFIG.voting_delay)
        assert system.block_number == system.governor.proposal_snapshot(proposal_id)
        assert system.state(proposal_id) == ProposalState.ACTIVE

        system = system.cast_vote(ALICE, proposal_id, VoteSupport.FOR)
        system = system.transfer(ALICE, DAVE, 1_000_000).delegate(DAVE, DAVE)
        system = system.cast_vote(DAVE, proposal_id, VoteSupport.FOR)

        assert system.governor.proposal_votes(proposal_id).for_votes == 1_000_000
        assert system.governor.get_proposal(proposal_id).receipts[DAVE].weight == 0

    def test_mint_inside_snapshot_block_keeps_quorum(self):
        system = with_voters(deploy_fast(), {ALICE: 40}).mint(CAROL, 960).mine()
        calls = [parameter_call(system)]
        system, proposal_id = system.propose_calls(ALICE, calls, "Boundary")
        system = system.mine(FAST_CONFIG.voting_delay)
        system = system.cast_vote(ALICE, proposal_id, VoteSupport.FOR)
        system = system.mint(CAROL, 1_000_000)

        deadline = system.governor.proposal_deadline(proposal_id)
        system = system.mine(deadline - system.block_number + 1)
        assert system.state(proposal_id) == ProposalState.SUCCEEDED


class TestOutcomes:
    """Test quorum and majority outcomes."""

    def test_small_holder_cannot_reach_quorum(self):
        """500,000 For votes lose against a 40,000,000 quorum."""
        system = with_voters(deploy_fast(), {ALICE: 500_000})
        system = system.mint(CAROL, 999_500_000).mine()
        assert system.quorum(system.block_number - 1) == 40_000_000

        system, proposal_id = run_vote(
            system, [parameter_call(system)], "Underpowered", {ALICE: VoteSupport.FOR}
        )
        assert system.governor.proposal_votes(proposal_id).for_votes == 500_000
        assert system.state(proposal_id) == ProposalState.DEFEATED

    @pytest.mark.parametrize("for_votes, expected", [
        (39, ProposalState.DEFEATED),
        (40, ProposalState.SUCCEEDED),
    ])
    def test_quorum_boundary(self, for_votes: int, expected: ProposalState):
        """Unanimous support one unit short of quorum is still Defeated."""
        system = with_voters(deploy_fast(), {ALICE: for_votes})
        system = system.mint(CAROL, 1_000 - for_votes).mine()
        system, proposal_id = run_vote(
            system, [parameter_call(system)], "Boundary", {ALICE: VoteSupport.FOR}
        )
        assert system.quorum(system.governor.get_proposal(proposal_id).weight_block) == 40
        assert system.state(proposal_id) == expected

    def test_two_to_one_succeeds(self, three_voters: GovernanceSystem):
        system, proposal_id = run_vote(
            three_voters,
            [parameter_call(three_voters)],
            "Majority",
            {ALICE: VoteSupport.FOR, BOB: VoteSupport.FOR, CAROL: VoteSupport.AGAINST},
        )
        votes = system.governor.proposal_votes(proposal_id)
        assert votes.turnout == 3_000_000
        assert system.state(proposal_id) == ProposalState.SUCCEEDED

    def test_tie_is_defeated(self, three_voters: GovernanceSystem):
        system, proposal_id = run_vote(
            three_voters,
            [parameter_call(three_voters)],
            "Tie",
            {ALICE: VoteSupport.FOR, BOB: VoteSupport.AGAINST, CAROL: VoteSupport.ABSTAIN},
        )
        assert system.state(proposal_id) == ProposalState.DEFEATED

    def test_abstain_only_meets_quorum_but_fails(self, three_voters: GovernanceSystem):
        system, proposal_id = run_vote(
            three_voters,
            [parameter_call(three_voters)],
            "Abstain",
            {ALICE: VoteSupport.ABSTAIN},
        )
        assert system.state(proposal_id) == ProposalState.DEFEATED

    @settings(max_examples=25, deadline=None)
    @given(st.lists(st.sampled_from(VoteSupport), min_size=1, max_size=3))
    def test_outcome_matches_rule(self, ballots):
        system = with_voters(
            deploy_fast(), {ALICE: 1_000_000, BOB: 1_000_000, CAROL: 1_000_000}
        ).mine()
        voters = [ALICE, BOB, CAROL][: len(ballots)]
        system, proposal_id = run_vote(
            system, [parameter_call(system)], "Rule", dict(zip(voters, ballots))
        )
        for_votes = ballots.count(VoteSupport.FOR) * 1_000_000
        against = ballots.count(VoteSupport.AGAINST) * 1_000_000
        quorum = system.quorum(system.governor.get_proposal(proposal_id).weight_block)
        expected = (
            ProposalState.SUCCEEDED
            if len(ballots) * 1_000_000 >= quorum and for_votes > against
            else ProposalState.DEFEATED
        )
        assert system.state(proposal_id) == expected

    def test_unqueued_success_expires(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, proposal_id = run_vote(
            three_voters, calls, "Forgotten", {ALICE: VoteSupport.FOR}
        )
        system = system.mine(FAST_CONFIG.grace_period_blocks - 1)
        assert system.state(proposal_id) == ProposalState.SUCCEEDED
        system = system.mine()
        assert system.state(proposal_id) == ProposalState.EXPIRED
        with pytest.raises(StateError, match="Governor: proposal not successful"):
            system.queue(*proposal_arrays(calls, "Forgotten"))

    def test_grace_period_zero_never_expires(self):
        config = GovernorConfig(
            voting_delay=1, voting_period=5, quorum_percentage=4, grace_period_blocks=0
        )
        system = with_voters(GovernanceSystem.deploy(DEPLOYER, config), {ALICE: 10}).mine()
        system, proposal_id = run_vote(
            system, [parameter_call(system)], "Patient", {ALICE: VoteSupport.FOR}
        )
        assert system.mine(1_000_000).state(proposal_id) == ProposalState.SUCCEEDED


class TestQueueAndCancel:
    """Test queueing and cancellation paths."""

    def test_queue_requires_success(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, _ = run_vote(three_voters, calls, "Rejected", {ALICE: VoteSupport.AGAINST})
        with pytest.raises(StateError, match="Governor: proposal not successful"):
            system.queue(*proposal_arrays(calls, "Rejected"))

    def test_queue_schedules_timelock_operation(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, proposal_id = pass_and_queue(three_voters, calls, "Queued", [ALICE, BOB])
        proposal = system.governor.get_proposal(proposal_id)
        assert system.state(proposal_id) == ProposalState.QUEUED
        assert proposal.eta == system.now + system.timelock.min_delay
        operation = system.timelock.get_operation(proposal.operation_id)
        assert operation.salt == timelock_salt(
            system.addresses.governor, hash_description("Queued")
        )
        with pytest.raises(StateError, match="Governor: proposal not successful"):
            system.queue(*proposal_arrays(calls, "Queued"))

    def test_proposer_cancels_pending(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, proposal_id = three_voters.propose_calls(ALICE, calls, "Oops")
        system = system.cancel(ALICE, *proposal_arrays(calls, "Oops"))
        assert system.state(proposal_id) == ProposalState.CANCELED
        with pytest.raises(StateError, match="vote not currently active"):
            system.mine(3).cast_vote(BOB, proposal_id, VoteSupport.FOR)

    def test_stranger_cannot_cancel(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, _ = three_voters.propose_calls(ALICE, calls, "Mine")
        with pytest.raises(AuthorizationError, match="cannot cancel"):
            system.cancel(BOB, *proposal_arrays(calls, "Mine"))

    def test_canceller_role_cancels_active(self, guarded_system: GovernanceSystem):
        system = with_voters(guarded_system, {ALICE: 10}).mine()
        calls = [parameter_call(system)]
        system, proposal_id = system.propose_calls(ALICE, calls, "Guarded")
        system = system.mine(FAST_CONFIG.voting_delay)
        system = system.cancel(GUARDIAN, *proposal_arrays(calls, "Guarded"))
        assert system.state(proposal_id) == ProposalState.CANCELED

    def test_cannot_cancel_after_voting(self, three_voters: GovernanceSystem):
        calls = [parameter_call(three_voters)]
        system, _ = run_vote(three_voters, calls, "Done", {ALICE: VoteSupport.FOR})
        with pytest.raises(StateError, match="cannot cancel a succeeded proposal"):
            system.cancel(ALICE, *proposal_arrays(calls, "Done"))

    def test_timelock_cancel_cancels_queued_proposal(self, three_voters: GovernanceSystem):
        calls = [pay(three_voters, DAVE, 1)]
        system, proposal_id = pass_and_queue(three_voters, calls, "Pay Dave", [ALICE])
        operation_id = system.governor.get_proposal(proposal_id).operation_id
        system = system.cancel_operation(system.addresses.governor, operation_id)
        assert system.state(proposal_id) == ProposalState.CANCELED
        with pytest.raises(StateError, match="Governor: proposal not queued"):
            system.advance_time(system.timelock.min_delay).execute(
                *proposal_arrays(calls, "Pay Dave")
            )

    def test_unknown_proposal(self, system: GovernanceSystem):
        with pytest.raises(StateError, match="unknown proposal id"):
            system.state("0xdeadbeef")


class TestGovernorParameters:
    """Governance-only parameter updates."""

    def test_only_timelock_updates_parameters(self, system: GovernanceSystem):
        with pytest.raises(AuthorizationError, match="onlyGovernance"):
            system.governor.update_parameter(DEPLOYER, "voting_period", 10, system.block_number)

    def test_invalid_parameter_values_rejected(self, system: GovernanceSystem):
        timelock = system.addresses.timelock
        with pytest.raises(InputValidationError, match="Quorum percentage"):
            system.governor.update_parameter(timelock, "quorum_percentage", 101, 5)
        with pytest.raises(InputValidationError, match="Unknown governor parameter"):
            system.governor.update_parameter(timelock, "name", 1, 5)

    def test_quorum_change_does_not_affect_earlier_snapshots(self, system: GovernanceSystem):
        system = with_voters(system, {ALICE: 1_000}).mine(5)
        snapshot = system.block_number - 1
        governor = system.governor.update_parameter(
            system.addresses.timelock, "quorum_percentage", 50, system.block_number
        )
        assert governor.quorum(snapshot, system.votes) == 40
        assert governor.quorum(system.block_number, system.votes) == 500
