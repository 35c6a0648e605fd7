"""
Composed governance world state.

``GovernanceSystem`` bundles the chain clock, the voting ledger, the
governor, the timelock and the treasury into one immutable value. Every
operation returns a new system with the emitted events appended; if any
step raises, the caller still holds the previous system untouched. This is
what makes proposal execution all-or-nothing: the governor, the timelock
and every component touched by the proposal's calls are replaced together
or not at all.

``GovernanceLedger`` is the mutable holder that serializes operations and
optionally persists their events to an ``EventStore``.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from threading import RLock
from typing import Any

from ..datastructures.access_control import (
    AI_CONTROLLER_ROLE,
    DEFAULT_ADMIN_ROLE,
    GOVERNOR_ROLE,
)
from ..datastructures.actions import (
    AllowlistedCall,
    Call,
    ParameterUpdate,
    RoleUpdate,
    TreasuryWithdrawal,
    arrays_to_calls,
)
from ..datastructures.chain import ChainClock
from ..datastructures.event_store import EventStore
from ..datastructures.events import EventType, GovernanceEvent
from ..datastructures.governance_types import (
    GovernorConfig,
    ProposalState,
    VoteSupport,
    hash_proposal,
)
from ..datastructures.governor import Governor
from ..datastructures.timelock import Timelock
from ..datastructures.treasury import Treasury
from ..datastructures.type_aliases import (
    NATIVE_TOKEN,
    SECONDS_PER_DAY,
    Address,
    Calldata,
    DescriptionHash,
    DurationSeconds,
    OperationId,
    ProposalId,
    TokenAmount,
    derive_contract_address,
    hash_description,
    parse_units,
)
from ..datastructures.voting_ledger import VotesLedger
from .errors import AuthorizationError, InputValidationError, ResourceLimitError
from .logging import component_logger

log = component_logger("system")

# function name -> (component, system method); the method takes the caller first.
ALLOWLISTED_FUNCTIONS: dict[str, tuple[str, str]] = {
    "add_asset": ("treasury", "add_asset"),
    "set_asset_active": ("treasury", "set_asset_active"),
    "set_ai_controller": ("treasury", "set_ai_controller"),
    "hand_over_administration": ("timelock", "hand_over_timelock_administration"),
}


@dataclass(frozen=True, slots=True)
class ContractAddresses:
    """Addresses of the deployed components."""

    token: Address
    timelock: Address
    governor: Address
    treasury: Address

    def component_of(self, address: Address) -> str | None:
        for name in ("token", "timelock", "governor", "treasury"):
            if getattr(self, name) == address:
                return name
        return None

    def to_dict(self) -> dict[str, str]:
        return {
            "token": self.token,
            "timelock": self.timelock,
            "governor": self.governor,
            "treasury": self.treasury,
        }


@dataclass(frozen=True, slots=True)
class GovernanceSystem:
    """Immutable snapshot of every governance component."""

    deployer: Address
    addresses: ContractAddresses
    clock: ChainClock
    votes: VotesLedger
    governor: Governor
    timelock: Timelock
    treasury: Treasury
    call_allowlist: frozenset[tuple[Address, str]] = frozenset()
    events: tuple[GovernanceEvent, ...] = ()

    @classmethod
    def deploy(
        cls,
        deployer: Address,
        config: GovernorConfig | None = None,
        *,
        timelock_min_delay: DurationSeconds = SECONDS_PER_DAY,
        daily_withdrawal_limit: TokenAmount = parse_units(1000),
        clock: ChainClock | None = None,
        cancellers: Sequence[Address] = (),
        token_name: str = "Governance Token",
        token_symbol: str = "GOV",
    ) -> GovernanceSystem:
        """Deploy token, timelock, governor and treasury with their roles wired.

        The governor is proposer, canceller and executor on the timelock. The
        timelock and the deployer both hold the treasury's governor and
        admin roles. The native asset is registered on the treasury.
        """
        config = config or GovernorConfig()
        clock = clock or ChainClock()
        addresses = ContractAddresses(
            token=derive_contract_address(deployer, 0),
            timelock=derive_contract_address(deployer, 1),
            governor=derive_contract_address(deployer, 2),
            treasury=derive_contract_address(deployer, 3),
        )

        timelock = Timelock.create(
            address=addresses.timelock,
            min_delay=timelock_min_delay,
            proposers=(addresses.governor,),
            executors=(addresses.governor,),
            admin=deployer,
        )
        governor = Governor.create(
            address=addresses.governor,
            timelock_address=addresses.timelock,
            config=config,
            block=clock.block_number,
            cancellers=cancellers,
        )
        treasury = Treasury.create(
            address=addresses.treasury,
            governor=addresses.timelock,
            admin=deployer,
            daily_limit=daily_withdrawal_limit,
            now=clock.timestamp,
        )
        treasury = treasury.grant_role(deployer, DEFAULT_ADMIN_ROLE, addresses.timelock)

        system = cls(
            deployer=deployer,
            addresses=addresses,
            clock=clock,
            votes=VotesLedger(name=token_name, symbol=token_symbol),
            governor=governor,
            timelock=timelock,
            treasury=treasury,
            call_allowlist=frozenset(
                (getattr(addresses, component), function)
                for function, (component, _) in ALLOWLISTED_FUNCTIONS.items()
            ),
        )
        for component, registry in (
            (addresses.timelock, timelock.roles),
            (addresses.treasury, treasury.roles),
        ):
            for role, holders in sorted(registry.to_dict().items()):
                for holder in holders:
                    system = system._emit(
                        EventType.ROLE_GRANTED,
                        component,
                        role=role,
                        account=holder,
                        sender=deployer,
                    )
        system = system.add_asset(deployer, NATIVE_TOKEN, "Native Currency", "native")
        log.info(
            f"Deployed governance system for {deployer}: governor {addresses.governor}, "
            f"timelock {addresses.timelock}, treasury {addresses.treasury}"
        )
        return system

    # Chain

    @property
    def block_number(self) -> int:
        return self.clock.block_number

    @property
    def now(self) -> int:
        return self.clock.timestamp

    def mine(self, blocks: int = 1) -> GovernanceSystem:
        return self._replace(clock=self.clock.mine(blocks))

    def advance_time(self, seconds: DurationSeconds) -> GovernanceSystem:
        return self._replace(clock=self.clock.advance_time(seconds))

    # Voting token

    def mint(self, to: Address, amount: TokenAmount) -> GovernanceSystem:
        votes = self.votes.mint(to, amount, self.block_number)
        return self._replace(votes=votes)._emit(
            EventType.TRANSFER, self.addresses.token, sender=None, to=to, amount=amount
        )

    def transfer(self, sender: Address, to: Address, amount: TokenAmount) -> GovernanceSystem:
        votes = self.votes.transfer(sender, to, amount, self.block_number)
        return self._replace(votes=votes)._emit(
            EventType.TRANSFER, self.addresses.token, sender=sender, to=to, amount=amount
        )

    def delegate(self, account: Address, delegatee: Address) -> GovernanceSystem:
        previous = self.votes.delegate_of(account)
        votes = self.votes.delegate(account, delegatee, self.block_number)
        return self._replace(votes=votes)._emit(
            EventType.DELEGATE_CHANGED,
            self.addresses.token,
            delegator=account,
            from_delegate=previous,
            to_delegate=delegatee,
        )

    # Governor

    def state(self, proposal_id: ProposalId) -> ProposalState:
        return self.governor.state(
            proposal_id, self.block_number, self.votes, self.timelock
        )

    def quorum(self, block: int | None = None) -> TokenAmount:
        block = self.block_number if block is None else block
        return self.governor.quorum(block, self.votes)

    def propose(
        self,
        proposer: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description: str,
    ) -> tuple[GovernanceSystem, ProposalId]:
        governor, proposal = self.governor.propose(
            proposer,
            targets,
            values,
            calldatas,
            description,
            self.votes,
            self.block_number,
            self.now,
        )
        system = self._replace(governor=governor)._emit(
            EventType.PROPOSAL_CREATED,
            self.addresses.governor,
            proposal_id=proposal.proposal_id,
            proposer=proposer,
            targets=list(proposal.targets),
            values=list(proposal.values),
            calldatas=[calldata.hex() for calldata in proposal.calldatas],
            vote_start=proposal.snapshot_block,
            vote_end=proposal.deadline_block,
            description=description,
        )
        return system, proposal.proposal_id

    def propose_calls(
        self, proposer: Address, calls: Sequence[Call], description: str
    ) -> tuple[GovernanceSystem, ProposalId]:
        """Propose from typed calls instead of raw arrays."""
        return self.propose(
            proposer,
            [call.target for call in calls],
            [call.value for call in calls],
            [call.calldata for call in calls],
            description,
        )

    def cast_vote(
        self,
        voter: Address,
        proposal_id: ProposalId,
        support: int | VoteSupport,
        reason: str = "",
    ) -> GovernanceSystem:
        governor, receipt = self.governor.cast_vote(
            voter,
            proposal_id,
            support,
            self.votes,
            self.timelock,
            self.block_number,
            reason,
        )
        return self._replace(governor=governor)._emit(
            EventType.VOTE_CAST,
            self.addresses.governor,
            voter=voter,
            proposal_id=proposal_id,
            support=int(receipt.support),
            weight=receipt.weight,
            reason=reason,
        )

    def queue(
        self,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
    ) -> GovernanceSystem:
        governor, timelock, proposal = self.governor.queue(
            targets,
            values,
            calldatas,
            description_hash,
            self.votes,
            self.timelock,
            self.block_number,
            self.now,
        )
        system = self._replace(governor=governor, timelock=timelock)
        for index, (target, value, calldata) in enumerate(
            zip(proposal.targets, proposal.values, proposal.calldatas)
        ):
            system = system._emit(
                EventType.CALL_SCHEDULED,
                self.addresses.timelock,
                operation_id=proposal.operation_id,
                index=index,
                target=target,
                value=value,
                calldata=calldata.hex(),
                delay=timelock.min_delay,
            )
        return system._emit(
            EventType.PROPOSAL_QUEUED,
            self.addresses.governor,
            proposal_id=proposal.proposal_id,
            eta=proposal.eta,
        )

    def execute(
        self,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
    ) -> GovernanceSystem:
        """Execute a queued proposal; every call succeeds or nothing changes."""
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        operation_id = self.governor.get_proposal(proposal_id).operation_id
        governor, timelock, calls = self.governor.execute(
            targets,
            values,
            calldatas,
            description_hash,
            self.votes,
            self.timelock,
            self.block_number,
            self.now,
        )
        system = self._replace(governor=governor, timelock=timelock)
        system = system._run_calls(operation_id, calls)
        log.info(f"Proposal {proposal_id[:18]} executed with {len(calls)} call(s)")
        return system._emit(
            EventType.PROPOSAL_EXECUTED, self.addresses.governor, proposal_id=proposal_id
        )

    def cancel(
        self,
        caller: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        description_hash: DescriptionHash,
    ) -> GovernanceSystem:
        governor, proposal = self.governor.cancel(
            caller,
            targets,
            values,
            calldatas,
            description_hash,
            self.votes,
            self.timelock,
            self.block_number,
        )
        return self._replace(governor=governor)._emit(
            EventType.PROPOSAL_CANCELED,
            self.addresses.governor,
            proposal_id=proposal.proposal_id,
        )

    # Timelock

    def schedule_operation(
        self,
        caller: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        predecessor: OperationId,
        salt: str,
        delay: DurationSeconds,
    ) -> tuple[GovernanceSystem, OperationId]:
        arrays_to_calls(targets, values, calldatas)
        timelock, operation = self.timelock.schedule_batch(
            caller, targets, values, calldatas, predecessor, salt, delay, self.now
        )
        system = self._replace(timelock=timelock)
        for index, (target, value, calldata) in enumerate(
            zip(operation.targets, operation.values, operation.calldatas)
        ):
            system = system._emit(
                EventType.CALL_SCHEDULED,
                self.addresses.timelock,
                operation_id=operation.operation_id,
                index=index,
                target=target,
                value=value,
                calldata=calldata.hex(),
                predecessor=predecessor,
                delay=delay,
            )
        return system, operation.operation_id

    def execute_operation(
        self,
        caller: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        predecessor: OperationId,
        salt: str,
    ) -> GovernanceSystem:
        calls = arrays_to_calls(targets, values, calldatas)
        timelock, operation = self.timelock.execute_batch(
            caller, targets, values, calldatas, predecessor, salt, self.now
        )
        return self._replace(timelock=timelock)._run_calls(operation.operation_id, calls)

    def cancel_operation(self, caller: Address, operation_id: OperationId) -> GovernanceSystem:
        timelock = self.timelock.cancel(caller, operation_id)
        return self._replace(timelock=timelock)._emit(
            EventType.OPERATION_CANCELLED, self.addresses.timelock, operation_id=operation_id
        )

    def hand_over_timelock_administration(self, caller: Address) -> GovernanceSystem:
        """Make the timelock its own only administrator; cannot be undone."""
        previous_admins = self.timelock.roles.role_members(DEFAULT_ADMIN_ROLE)
        timelock = self.timelock.hand_over_administration(caller)
        system = self._replace(timelock=timelock)
        for admin in sorted(previous_admins - {self.addresses.timelock}):
            system = system._emit(
                EventType.ROLE_REVOKED,
                self.addresses.timelock,
                role=DEFAULT_ADMIN_ROLE,
                account=admin,
                sender=caller,
            )
        return system._emit(
            EventType.ADMINISTRATION_HANDED_OVER, self.addresses.timelock, sender=caller
        )

    # Treasury

    def deposit(self, sender: Address, token: Address, amount: TokenAmount) -> GovernanceSystem:
        treasury = self.treasury.deposit(sender, token, amount)
        return self._replace(treasury=treasury)._emit(
            EventType.FUNDS_DEPOSITED,
            self.addresses.treasury,
            token=token,
            sender=sender,
            amount=amount,
        )

    def withdraw(
        self, caller: Address, token: Address, to: Address, amount: TokenAmount
    ) -> GovernanceSystem:
        treasury = self.treasury.withdraw(caller, token, to, amount, self.now)
        return self._replace(treasury=treasury)._emit(
            EventType.FUNDS_WITHDRAWN,
            self.addresses.treasury,
            token=token,
            recipient=to,
            amount=amount,
            caller=caller,
        )

    def set_daily_withdrawal_limit(
        self, caller: Address, new_limit: TokenAmount
    ) -> GovernanceSystem:
        treasury = self.treasury.set_daily_withdrawal_limit(caller, new_limit)
        return self._replace(treasury=treasury)._emit(
            EventType.DAILY_LIMIT_UPDATED, self.addresses.treasury, new_limit=new_limit
        )

    def add_asset(
        self, caller: Address, token: Address, name: str, asset_type: str
    ) -> GovernanceSystem:
        treasury = self.treasury.add_asset(caller, token, name, asset_type)
        return self._replace(treasury=treasury)._emit(
            EventType.ASSET_ADDED,
            self.addresses.treasury,
            token=token,
            name=name,
            asset_type=asset_type,
        )

    def set_asset_active(
        self, caller: Address, token: Address, active: bool
    ) -> GovernanceSystem:
        treasury = self.treasury.set_asset_active(caller, token, active)
        return self._replace(treasury=treasury)._emit(
            EventType.ASSET_STATUS_CHANGED,
            self.addresses.treasury,
            token=token,
            is_active=active,
        )

    def set_ai_controller(self, caller: Address, controller: Address) -> GovernanceSystem:
        treasury = self.treasury.set_ai_controller(caller, controller)
        system = self._replace(treasury=treasury)
        for role in (AI_CONTROLLER_ROLE, GOVERNOR_ROLE):
            system = system._emit(
                EventType.ROLE_GRANTED,
                self.addresses.treasury,
                role=role,
                account=controller,
                sender=caller,
            )
        return system

    # Call execution

    def _run_calls(
        self, operation_id: OperationId, calls: Iterable[Call]
    ) -> GovernanceSystem:
        system = self
        for index, call in enumerate(calls):
            system = system._apply_call(call, caller=self.addresses.timelock)
            system = system._emit(
                EventType.CALL_EXECUTED,
                self.addresses.timelock,
                operation_id=operation_id,
                index=index,
                target=call.target,
                value=call.value,
                calldata=call.calldata.hex(),
            )
        return system

    def _apply_call(self, call: Call, caller: Address) -> GovernanceSystem:
        """Apply one decoded call on behalf of ``caller``."""
        if call.value:
            # The timelock holds no native balance of its own.
            raise ResourceLimitError("TimelockController: underlying transaction reverted")

        component = self.addresses.component_of(call.target)
        if component is None:
            raise InputValidationError(f"Unknown call target: {call.target}")

        match call.action:
            case TreasuryWithdrawal(token=token, recipient=recipient, amount=amount):
                if component != "treasury":
                    raise InputValidationError(
                        f"Withdrawals must target the treasury, not the {component}"
                    )
                return self.withdraw(caller, token, recipient, amount)
            case ParameterUpdate(parameter=parameter, value=value):
                return self._update_parameter(component, caller, parameter, value)
            case RoleUpdate(role=role, account=account, grant=grant):
                return self._update_role(component, caller, role, account, grant)
            case AllowlistedCall(function=function, args=args):
                return self._allowlisted_call(call.target, caller, function, args)
        raise InputValidationError(f"Unsupported action: {call.action!r}")

    def _update_parameter(
        self, component: str, caller: Address, parameter: str, value: int
    ) -> GovernanceSystem:
        match component:
            case "governor":
                system = self._replace(
                    governor=self.governor.update_parameter(
                        caller, parameter, value, self.block_number
                    )
                )
            case "timelock":
                system = self._replace(
                    timelock=self.timelock.update_parameter(caller, parameter, value)
                )
                return system._emit(
                    EventType.MIN_DELAY_CHANGE,
                    self.addresses.timelock,
                    old_duration=self.timelock.min_delay,
                    new_duration=value,
                )
            case "treasury":
                system = self._replace(
                    treasury=self.treasury.update_parameter(caller, parameter, value)
                )
            case _:
                raise InputValidationError(f"The {component} has no parameters")
        return system._emit(
            EventType.PARAMETER_UPDATED,
            getattr(self.addresses, component),
            parameter=parameter,
            value=value,
        )

    def _update_role(
        self,
        component: str,
        caller: Address,
        role: str,
        account: Address,
        grant: bool,
    ) -> GovernanceSystem:
        if component not in ("governor", "timelock", "treasury"):
            raise InputValidationError(f"The {component} has no roles")
        target = getattr(self, component)
        updated = (
            target.grant_role(caller, role, account)
            if grant
            else target.revoke_role(caller, role, account)
        )
        return self._replace(**{component: updated})._emit(
            EventType.ROLE_GRANTED if grant else EventType.ROLE_REVOKED,
            getattr(self.addresses, component),
            role=role,
            account=account,
            sender=caller,
        )

    def _allowlisted_call(
        self,
        target: Address,
        caller: Address,
        function: str,
        args: Sequence[Any],
    ) -> GovernanceSystem:
        if (target, function) not in self.call_allowlist:
            raise AuthorizationError(f"Call {function} on {target} is not allowlisted")
        _, method_name = ALLOWLISTED_FUNCTIONS[function]
        method: Callable[..., GovernanceSystem] = getattr(self, method_name)
        try:
            inspect.signature(method).bind(caller, *args)
        except TypeError as e:
            raise InputValidationError(f"Bad arguments for {function}: {e}") from e
        return method(caller, *args)

    def with_allowlisted_call(self, target: Address, function: str) -> GovernanceSystem:
        """Permit ``function`` on ``target`` for proposals using ``AllowlistedCall``."""
        if function not in ALLOWLISTED_FUNCTIONS:
            raise InputValidationError(f"Unknown allowlisted function: {function}")
        component, _ = ALLOWLISTED_FUNCTIONS[function]
        if getattr(self.addresses, component) != target:
            raise InputValidationError(f"{function} is not implemented by {target}")
        return self._replace(call_allowlist=self.call_allowlist | {(target, function)})

    def without_allowlisted_call(self, target: Address, function: str) -> GovernanceSystem:
        return self._replace(call_allowlist=self.call_allowlist - {(target, function)})

    # Plumbing

    def _emit(self, event_type: EventType, emitter: Address, **args: Any) -> GovernanceSystem:
        event = GovernanceEvent(
            event_type=event_type,
            emitter=emitter,
            block_number=self.block_number,
            timestamp=self.now,
            args=args,
        )
        return self._replace(events=self.events + (event,))

    def _replace(self, **changes: Any) -> GovernanceSystem:
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        data.update(changes)
        return GovernanceSystem(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployer": self.deployer,
            "addresses": self.addresses.to_dict(),
            "clock": self.clock.to_dict(),
            "token": self.votes.to_dict(),
            "governor": self.governor.to_dict(),
            "timelock": self.timelock.to_dict(),
            "treasury": self.treasury.to_dict(),
            "call_allowlist": sorted(
                f"{target}:{function}" for target, function in self.call_allowlist
            ),
            "event_count": len(self.events),
        }


def proposal_arrays(
    calls: Sequence[Call], description: str
) -> tuple[list[Address], list[TokenAmount], list[Calldata], DescriptionHash]:
    """Arrays and description hash used to queue, execute or cancel a proposal."""
    return (
        [call.target for call in calls],
        [call.value for call in calls],
        [call.calldata for call in calls],
        hash_description(description),
    )


@dataclass(slots=True)
class GovernanceLedger:
    """Mutable holder that applies operations to a ``GovernanceSystem`` one at a time."""

    system: GovernanceSystem
    store: EventStore | None = None
    deployment: str = "default"
    _lock: RLock = field(default_factory=RLock)

    def __post_init__(self) -> None:
        if self.store is not None and self.system.events:
            if self.store.count(self.deployment) == 0:
                self.store.append(self.deployment, self.system.events)

    def apply(self, operation: Callable[[GovernanceSystem], Any]) -> Any:
        """Run ``operation`` against the current system and commit its result.

        ``operation`` returns either a new system or a tuple whose first
        element is the new system. If it raises, nothing is committed.
        """
        with self._lock:
            result = operation(self.system)
            new_system = result[0] if isinstance(result, tuple) else result
            if not isinstance(new_system, GovernanceSystem):
                raise TypeError("Operation must return a GovernanceSystem")
            new_events = new_system.events[len(self.system.events) :]
            if self.store is not None and new_events:
                self.store.append(self.deployment, new_events)
            self.system = new_system
            return result

    def state(self, proposal_id: ProposalId) -> ProposalState:
        with self._lock:
            return self.system.state(proposal_id)

    @property
    def events(self) -> tuple[GovernanceEvent, ...]:
        with self._lock:
            return self.system.events
