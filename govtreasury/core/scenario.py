"""
Scripted scenario replay.

A scenario is a JSON document with an optional ``deployer``, optional
settings overrides and a list of ``steps``. Each step names an operation
(``op``) and its arguments, for example::

    {"op": "propose", "id": "p1", "proposer": "alice",
     "description": "Pay bob",
     "calls": [{"target": "treasury",
                "action": {"action": "treasury_withdrawal",
                           "token": "native", "recipient": "bob",
                           "amount": "100"}}]}

Amounts are written in whole units and converted with ``parse_units``.
The names ``treasury``, ``governor``, ``timelock``, ``token``, ``deployer``
and ``native`` resolve to the deployed addresses. A step may carry
``expect_error``; the step then must fail with a message containing that
text, and the system state is left as it was before the step.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import GovernanceSettings
from ..datastructures.actions import (
    AllowlistedCall,
    Call,
    ParameterUpdate,
    RoleUpdate,
    TreasuryWithdrawal,
)
from ..datastructures.event_store import EventStore
from ..datastructures.governance_types import ProposalState, VoteSupport
from ..datastructures.type_aliases import NATIVE_TOKEN, Address, ProposalId, parse_units
from .errors import GovernanceError, InputValidationError
from .logging import component_logger
from .system import GovernanceLedger, GovernanceSystem, proposal_arrays

log = component_logger("scenario")

DEFAULT_DEPLOYER: Address = "deployer"


class ScenarioError(Exception):
    """A scenario step did not behave as scripted."""


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Result of one replayed step."""

    index: int
    op: str
    ok: bool
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "op": self.op, "ok": self.ok, "detail": self.detail}


@dataclass(slots=True)
class ScenarioRunner:
    """Replays scenario steps against a freshly deployed system."""

    ledger: GovernanceLedger
    decimals: int = 18
    proposals: dict[str, tuple[ProposalId, tuple[Call, ...], str]] = field(
        default_factory=dict
    )
    outcomes: list[StepOutcome] = field(default_factory=list)

    @classmethod
    def from_settings(
        cls, settings: GovernanceSettings, deployer: Address = DEFAULT_DEPLOYER
    ) -> ScenarioRunner:
        system = GovernanceSystem.deploy(
            deployer,
            settings.to_governor_config(),
            timelock_min_delay=settings.timelock_min_delay,
            daily_withdrawal_limit=settings.daily_withdrawal_limit_units,
            clock=settings.to_clock(),
        )
        store = EventStore(settings.event_db_path) if settings.event_db_path else None
        return cls(
            ledger=GovernanceLedger(system=system, store=store),
            decimals=settings.token_decimals,
        )

    @property
    def system(self) -> GovernanceSystem:
        return self.ledger.system

    def run(self, steps: list[Mapping[str, Any]]) -> list[StepOutcome]:
        for index, step in enumerate(steps):
            self.outcomes.append(self.run_step(index, step))
        return self.outcomes

    def run_step(self, index: int, step: Mapping[str, Any]) -> StepOutcome:
        op = step.get("op")
        handler = self._handlers().get(op)
        if handler is None:
            raise ScenarioError(f"Step {index}: unknown op {op!r}")

        expected_error = step.get("expect_error")
        try:
            detail = handler(step)
        except GovernanceError as e:
            if expected_error is None or expected_error not in e.reason:
                raise ScenarioError(f"Step {index} ({op}) failed: {e.reason}") from e
            log.debug(f"Step {index} ({op}) rejected as expected: {e.reason}")
            return StepOutcome(index=index, op=op, ok=False, detail=e.reason)
        except KeyError as e:
            raise ScenarioError(f"Step {index} ({op}): missing field {e}") from e
        except (ValueError, ArithmeticError) as e:
            raise ScenarioError(f"Step {index} ({op}): invalid argument: {e}") from e
        if expected_error is not None:
            raise ScenarioError(
                f"Step {index} ({op}) succeeded but expected error {expected_error!r}"
            )
        return StepOutcome(index=index, op=op, ok=True, detail=detail or "")

    # Name resolution

    def address(self, name: str) -> Address:
        addresses = self.system.addresses
        match name:
            case "treasury" | "governor" | "timelock" | "token":
                return getattr(addresses, name)
            case "deployer":
                return self.system.deployer
            case "native":
                return NATIVE_TOKEN
        return name

    def amount(self, value: Any) -> int:
        return parse_units(str(value), self.decimals)

    def proposal(self, name: str) -> tuple[ProposalId, tuple[Call, ...], str]:
        if name not in self.proposals:
            raise ScenarioError(f"Unknown proposal {name!r}")
        return self.proposals[name]

    def build_call(self, spec: Mapping[str, Any]) -> Call:
        action_spec = dict(spec["action"])
        kind = action_spec.pop("action")
        match kind:
            case TreasuryWithdrawal.kind:
                action = TreasuryWithdrawal(
                    token=self.address(action_spec["token"]),
                    recipient=self.address(action_spec["recipient"]),
                    amount=self.amount(action_spec["amount"]),
                )
            case ParameterUpdate.kind:
                value = (
                    self.amount(action_spec["units"])
                    if "units" in action_spec
                    else int(action_spec["value"])
                )
                action = ParameterUpdate(parameter=action_spec["parameter"], value=value)
            case RoleUpdate.kind:
                action = RoleUpdate(
                    role=action_spec["role"],
                    account=self.address(action_spec["account"]),
                    grant=bool(action_spec.get("grant", True)),
                )
            case AllowlistedCall.kind:
                action = AllowlistedCall(
                    function=action_spec["function"],
                    args=tuple(action_spec.get("args", ())),
                )
            case _:
                raise InputValidationError(f"Unknown action: {kind!r}")
        return Call(
            target=self.address(spec["target"]),
            action=action,
            value=int(spec.get("value", 0)),
        )

    # Step handlers

    def _handlers(self) -> dict[str, Callable[[Mapping[str, Any]], str | None]]:
        return {
            "mint": self._mint,
            "transfer": self._transfer,
            "delegate": self._delegate,
            "mine": self._mine,
            "advance_time": self._advance_time,
            "propose": self._propose,
            "vote": self._vote,
            "queue": self._queue,
            "execute": self._execute,
            "cancel": self._cancel,
            "deposit": self._deposit,
            "withdraw": self._withdraw,
            "set_daily_limit": self._set_daily_limit,
            "add_asset": self._add_asset,
            "set_ai_controller": self._set_ai_controller,
            "expect_state": self._expect_state,
        }

    def _mint(self, step: Mapping[str, Any]) -> None:
        to, amount = self.address(step["to"]), self.amount(step["amount"])
        self.ledger.apply(lambda system: system.mint(to, amount))

    def _transfer(self, step: Mapping[str, Any]) -> None:
        sender, to = self.address(step["sender"]), self.address(step["to"])
        amount = self.amount(step["amount"])
        self.ledger.apply(lambda system: system.transfer(sender, to, amount))

    def _delegate(self, step: Mapping[str, Any]) -> None:
        account = self.address(step["account"])
        delegatee = self.address(step.get("delegatee", step["account"]))
        self.ledger.apply(lambda system: system.delegate(account, delegatee))

    def _mine(self, step: Mapping[str, Any]) -> str:
        blocks = int(step.get("blocks", 1))
        self.ledger.apply(lambda system: system.mine(blocks))
        return f"block {self.system.block_number}"

    def _advance_time(self, step: Mapping[str, Any]) -> str:
        seconds = int(step["seconds"])
        self.ledger.apply(lambda system: system.advance_time(seconds))
        return f"time {self.system.now}"

    def _propose(self, step: Mapping[str, Any]) -> str:
        name = step.get("id", f"proposal-{len(self.proposals) + 1}")
        proposer = self.address(step["proposer"])
        description = step["description"]
        calls = tuple(self.build_call(call) for call in step["calls"])
        _, proposal_id = self.ledger.apply(
            lambda system: system.propose_calls(proposer, calls, description)
        )
        self.proposals[name] = (proposal_id, calls, description)
        return f"{name} = {proposal_id[:18]}"

    def _vote(self, step: Mapping[str, Any]) -> str:
        proposal_id, _, _ = self.proposal(step["proposal"])
        voter = self.address(step["voter"])
        support = step["support"]
        if isinstance(support, str):
            support = VoteSupport[support.upper()]
        reason = step.get("reason", "")
        self.ledger.apply(
            lambda system: system.cast_vote(voter, proposal_id, support, reason)
        )
        return VoteSupport(support).name

    def _queue(self, step: Mapping[str, Any]) -> None:
        _, calls, description = self.proposal(step["proposal"])
        arrays = proposal_arrays(calls, description)
        self.ledger.apply(lambda system: system.queue(*arrays))

    def _execute(self, step: Mapping[str, Any]) -> None:
        _, calls, description = self.proposal(step["proposal"])
        arrays = proposal_arrays(calls, description)
        self.ledger.apply(lambda system: system.execute(*arrays))

    def _cancel(self, step: Mapping[str, Any]) -> None:
        _, calls, description = self.proposal(step["proposal"])
        caller = self.address(step["caller"])
        arrays = proposal_arrays(calls, description)
        self.ledger.apply(lambda system: system.cancel(caller, *arrays))

    def _deposit(self, step: Mapping[str, Any]) -> None:
        sender, token = self.address(step["sender"]), self.address(step["token"])
        amount = self.amount(step["amount"])
        self.ledger.apply(lambda system: system.deposit(sender, token, amount))

    def _withdraw(self, step: Mapping[str, Any]) -> str:
        caller, token = self.address(step["caller"]), self.address(step["token"])
        to, amount = self.address(step["to"]), self.amount(step["amount"])
        self.ledger.apply(lambda system: system.withdraw(caller, token, to, amount))
        return f"remaining {self.system.treasury.remaining_allowance(self.system.now)}"

    def _set_daily_limit(self, step: Mapping[str, Any]) -> None:
        caller, limit = self.address(step["caller"]), self.amount(step["limit"])
        self.ledger.apply(lambda system: system.set_daily_withdrawal_limit(caller, limit))

    def _add_asset(self, step: Mapping[str, Any]) -> None:
        caller, token = self.address(step["caller"]), self.address(step["token"])
        name, asset_type = step["name"], step.get("asset_type", "token")
        self.ledger.apply(
            lambda system: system.add_asset(caller, token, name, asset_type)
        )

    def _set_ai_controller(self, step: Mapping[str, Any]) -> None:
        caller = self.address(step["caller"])
        controller = self.address(step["controller"])
        self.ledger.apply(lambda system: system.set_ai_controller(caller, controller))

    def _expect_state(self, step: Mapping[str, Any]) -> str:
        proposal_id, _, _ = self.proposal(step["proposal"])
        expected = ProposalState[step["state"].upper()]
        actual = self.system.state(proposal_id)
        if actual != expected:
            raise ScenarioError(
                f"Proposal {step['proposal']} is {actual.name}, expected {expected.name}"
            )
        return actual.name


def load_scenario(path: str | Path) -> dict[str, Any]:
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, list):
        data = {"steps": data}
    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise ScenarioError("Scenario must be a list of steps or an object with 'steps'")
    return data


def run_scenario(
    scenario: Mapping[str, Any], settings: GovernanceSettings | None = None
) -> ScenarioRunner:
    """Deploy a system with ``settings`` plus the scenario's overrides and replay it."""
    settings = settings or GovernanceSettings()
    overrides = scenario.get("settings") or {}
    if overrides:
        settings = GovernanceSettings.model_validate({**settings.model_dump(), **overrides})
    runner = ScenarioRunner.from_settings(
        settings, deployer=scenario.get("deployer", DEFAULT_DEPLOYER)
    )
    runner.run(list(scenario["steps"]))
    return runner
