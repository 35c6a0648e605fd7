"""Tests for scripted scenario replay."""

import json

import pytest

from govtreasury.config import GovernanceSettings
from govtreasury.core.scenario import (
    ScenarioError,
    ScenarioRunner,
    load_scenario,
    run_scenario,
)
from govtreasury.datastructures.event_store import EventStore
from govtreasury.datastructures.events import EventType
from govtreasury.datastructures.governance_types import ProposalState
from govtreasury.datastructures.type_aliases import NATIVE_TOKEN, parse_units
from tests.scenario_fixtures import FAST_SETTINGS, pay_carol_scenario


class TestScenarioReplay:
    """Replay full lifecycles from scripted steps."""

    def test_pay_carol(self):
        runner = run_scenario(pay_carol_scenario(), GovernanceSettings())
        system = runner.system
        proposal_id, _, _ = runner.proposals["p1"]

        assert system.state(proposal_id) == ProposalState.EXECUTED
        assert system.treasury.get_token_balance(NATIVE_TOKEN) == parse_units(4000)
        assert system.treasury.remaining_allowance(system.now) == 0
        rejected = [outcome for outcome in runner.outcomes if not outcome.ok]
        assert [outcome.op for outcome in rejected] == ["vote", "execute", "withdraw"]

    def test_overrides_apply(self):
        runner = run_scenario(pay_carol_scenario(), GovernanceSettings())
        assert runner.system.governor.config.voting_period == FAST_SETTINGS["voting_period"]
        assert runner.system.timelock.min_delay == FAST_SETTINGS["timelock_min_delay"]

    def test_unexpected_failure_raises(self):
        scenario = {
            "settings": dict(FAST_SETTINGS),
            "steps": [
                {
                    "op": "withdraw",
                    "caller": "mallory",
                    "token": "native",
                    "to": "mallory",
                    "amount": "1",
                }
            ],
        }
        with pytest.raises(ScenarioError, match="missing role GOVERNOR_ROLE"):
            run_scenario(scenario)

    def test_expected_error_must_occur(self):
        scenario = {
            "steps": [{"op": "mine", "expect_error": "anything"}],
        }
        with pytest.raises(ScenarioError, match="succeeded but expected error"):
            run_scenario(scenario)

    def test_wrong_expected_error_raises(self):
        scenario = {
            "steps": [
                {
                    "op": "deposit",
                    "sender": "donor",
                    "token": "native",
                    "amount": "0",
                    "expect_error": "Insufficient balance",
                }
            ]
        }
        with pytest.raises(ScenarioError, match="Deposit amount must be positive"):
            run_scenario(scenario)

    def test_unknown_op_and_proposal(self):
        with pytest.raises(ScenarioError, match="unknown op 'teleport'"):
            run_scenario({"steps": [{"op": "teleport"}]})
        with pytest.raises(ScenarioError, match="Unknown proposal 'nope'"):
            run_scenario({"steps": [{"op": "queue", "proposal": "nope"}]})

    def test_malformed_arguments_raise_scenario_error(self):
        with pytest.raises(ScenarioError, match=r"Step 0 \(withdraw\): missing field 'to'"):
            run_scenario({"steps": [{"op": "withdraw", "caller": "x", "token": "native"}]})
        with pytest.raises(ScenarioError, match=r"Step 0 \(mint\): invalid argument"):
            run_scenario({"steps": [{"op": "mint", "to": "alice", "amount": "Infinity"}]})

    def test_state_mismatch(self):
        scenario = pay_carol_scenario()
        scenario["steps"] = scenario["steps"][:7] + [
            {"op": "expect_state", "proposal": "p1", "state": "active"}
        ]
        with pytest.raises(ScenarioError, match="is PENDING, expected ACTIVE"):
            run_scenario(scenario)

    def test_named_addresses(self):
        runner = ScenarioRunner.from_settings(GovernanceSettings(), deployer="dao-admin")
        assert runner.address("treasury") == runner.system.addresses.treasury
        assert runner.address("deployer") == "dao-admin"
        assert runner.address("native") == NATIVE_TOKEN
        assert runner.address("carol") == "carol"

    def test_events_persisted_when_configured(self, tmp_path):
        db_path = str(tmp_path / "events.db")
        settings = GovernanceSettings(event_db_path=db_path)
        runner = run_scenario(pay_carol_scenario(), settings)

        store = EventStore(db_path)
        assert store.count("default") == len(runner.system.events)
        executed = store.load_events("default", EventType.PROPOSAL_EXECUTED)
        assert len(executed) == 1


class TestLoadScenario:
    """Test scenario file parsing."""

    def test_list_form(self, tmp_path):
        path = tmp_path / "steps.json"
        path.write_text(json.dumps([{"op": "mine"}]))
        assert load_scenario(path) == {"steps": [{"op": "mine"}]}

    def test_object_form(self, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(pay_carol_scenario()))
        assert load_scenario(path)["settings"] == FAST_SETTINGS

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"ops": []}))
        with pytest.raises(ScenarioError, match="list of steps"):
            load_scenario(path)
