"""
Timelock controller.

A mandatory minimum delay between a decision being approved and it taking
effect. Operations are scheduled by proposers, become ready once their
delay has elapsed and are executed at most once by executors. The timelock
only tracks operation state; running the calls of an operation is the job
of the composed system, which marks the operation executed in the same
atomic step.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.errors import AuthorizationError, InputValidationError, StateError
from ..core.logging import component_logger
from .access_control import (
    CANCELLER_ROLE,
    DEFAULT_ADMIN_ROLE,
    EXECUTOR_ROLE,
    PROPOSER_ROLE,
    RoleRegistry,
)
from .type_aliases import (
    EMPTY_HASH,
    Address,
    Calldata,
    DurationSeconds,
    OperationId,
    Timestamp,
    TokenAmount,
    canonical_json,
    hash_bytes,
)

log = component_logger("timelock")


def hash_operation_batch(
    targets: Sequence[Address],
    values: Sequence[TokenAmount],
    calldatas: Sequence[Calldata],
    predecessor: OperationId,
    salt: str,
) -> OperationId:
    """Deterministic id of a batch operation."""
    return hash_bytes(
        canonical_json(
            {
                "targets": list(targets),
                "values": [int(value) for value in values],
                "calldatas": [bytes(calldata).hex() for calldata in calldatas],
                "predecessor": predecessor,
                "salt": salt,
            }
        )
    )


@dataclass(frozen=True, slots=True)
class TimelockOperation:
    """A scheduled batch of calls."""

    operation_id: OperationId
    targets: tuple[Address, ...]
    values: tuple[TokenAmount, ...]
    calldatas: tuple[Calldata, ...]
    predecessor: OperationId
    salt: str
    ready_timestamp: Timestamp
    executed: bool = False

    def __post_init__(self) -> None:
        """Validate timelock operation."""
        if not self.operation_id:
            raise ValueError("Operation ID cannot be empty")
        if not (len(self.targets) == len(self.values) == len(self.calldatas)):
            raise ValueError("TimelockController: length mismatch")
        if self.ready_timestamp < 0:
            raise ValueError("Ready timestamp cannot be negative")

    def is_pending(self) -> bool:
        return not self.executed

    def is_ready(self, now: Timestamp) -> bool:
        return not self.executed and self.ready_timestamp <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "targets": list(self.targets),
            "values": list(self.values),
            "calldatas": [calldata.hex() for calldata in self.calldatas],
            "predecessor": self.predecessor,
            "salt": self.salt,
            "ready_timestamp": self.ready_timestamp,
            "executed": self.executed,
        }


@dataclass(frozen=True, slots=True)
class Timelock:
    """Immutable timelock state."""

    address: Address
    min_delay: DurationSeconds
    roles: RoleRegistry = field(default_factory=RoleRegistry)
    operations: dict[OperationId, TimelockOperation] = field(default_factory=dict)
    self_administered: bool = False

    def __post_init__(self) -> None:
        """Validate timelock."""
        if not self.address:
            raise ValueError("Timelock address cannot be empty")
        if self.min_delay < 0:
            raise ValueError("Minimum delay cannot be negative")
        if self.self_administered and self.roles.role_members(DEFAULT_ADMIN_ROLE) != {
            self.address
        }:
            raise ValueError("A self-administered timelock must be its only admin")

    @classmethod
    def create(
        cls,
        address: Address,
        min_delay: DurationSeconds,
        proposers: Sequence[Address] = (),
        executors: Sequence[Address] = (),
        admin: Address | None = None,
    ) -> Timelock:
        """Create a timelock that administers itself plus an optional external admin."""
        grants = [(DEFAULT_ADMIN_ROLE, address)]
        if admin is not None:
            grants.append((DEFAULT_ADMIN_ROLE, admin))
        for proposer in proposers:
            grants.append((PROPOSER_ROLE, proposer))
            grants.append((CANCELLER_ROLE, proposer))
        grants.extend((EXECUTOR_ROLE, executor) for executor in executors)
        return cls(
            address=address,
            min_delay=min_delay,
            roles=RoleRegistry.with_grants(grants),
        )

    # Views

    def get_operation(self, operation_id: OperationId) -> TimelockOperation | None:
        return self.operations.get(operation_id)

    def is_operation(self, operation_id: OperationId) -> bool:
        return operation_id in self.operations

    def is_operation_pending(self, operation_id: OperationId) -> bool:
        operation = self.operations.get(operation_id)
        return operation is not None and operation.is_pending()

    def is_operation_ready(self, operation_id: OperationId, now: Timestamp) -> bool:
        operation = self.operations.get(operation_id)
        return operation is not None and operation.is_ready(now)

    def is_operation_done(self, operation_id: OperationId) -> bool:
        operation = self.operations.get(operation_id)
        return operation is not None and operation.executed

    def get_timestamp(self, operation_id: OperationId) -> Timestamp:
        operation = self.operations.get(operation_id)
        return operation.ready_timestamp if operation else 0

    # Operations

    def schedule_batch(
        self,
        caller: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        predecessor: OperationId,
        salt: str,
        delay: DurationSeconds,
        now: Timestamp,
    ) -> tuple[Timelock, TimelockOperation]:
        """Schedule an operation that becomes ready after ``delay`` seconds."""
        self.roles.require_role(PROPOSER_ROLE, caller)
        if not (len(targets) == len(values) == len(calldatas)):
            raise InputValidationError("TimelockController: length mismatch")
        if not targets:
            raise InputValidationError("TimelockController: empty operation")
        operation_id = hash_operation_batch(targets, values, calldatas, predecessor, salt)
        if operation_id in self.operations:
            raise StateError("TimelockController: operation already scheduled")
        if delay < self.min_delay:
            raise InputValidationError("TimelockController: insufficient delay")

        operation = TimelockOperation(
            operation_id=operation_id,
            targets=tuple(targets),
            values=tuple(int(value) for value in values),
            calldatas=tuple(bytes(calldata) for calldata in calldatas),
            predecessor=predecessor,
            salt=salt,
            ready_timestamp=now + delay,
        )
        operations = dict(self.operations)
        operations[operation_id] = operation
        log.debug(
            "Scheduled operation {} ready at {}", operation_id, operation.ready_timestamp
        )
        return self._replace(operations=operations), operation

    def execute_batch(
        self,
        caller: Address,
        targets: Sequence[Address],
        values: Sequence[TokenAmount],
        calldatas: Sequence[Calldata],
        predecessor: OperationId,
        salt: str,
        now: Timestamp,
    ) -> tuple[Timelock, TimelockOperation]:
        """Mark a ready operation executed and return it for the caller to run."""
        self.roles.require_role(EXECUTOR_ROLE, caller)
        operation_id = hash_operation_batch(targets, values, calldatas, predecessor, salt)
        operation = self.operations.get(operation_id)
        if operation is None or not operation.is_ready(now):
            raise StateError("TimelockController: operation is not ready")
        if predecessor != EMPTY_HASH and not self.is_operation_done(predecessor):
            raise StateError("TimelockController: missing dependency")

        executed = TimelockOperation(
            operation_id=operation.operation_id,
            targets=operation.targets,
            values=operation.values,
            calldatas=operation.calldatas,
            predecessor=operation.predecessor,
            salt=operation.salt,
            ready_timestamp=operation.ready_timestamp,
            executed=True,
        )
        operations = dict(self.operations)
        operations[operation_id] = executed
        return self._replace(operations=operations), executed

    def cancel(self, caller: Address, operation_id: OperationId) -> Timelock:
        """Drop a pending operation; it may be scheduled again later."""
        self.roles.require_role(CANCELLER_ROLE, caller)
        if not self.is_operation_pending(operation_id):
            raise StateError("TimelockController: operation cannot be cancelled")
        operations = dict(self.operations)
        del operations[operation_id]
        return self._replace(operations=operations)

    def update_delay(self, caller: Address, new_delay: DurationSeconds) -> Timelock:
        """Change the minimum delay; only through the timelock's own operations."""
        if caller != self.address:
            raise AuthorizationError(
                f"TimelockController: caller {caller} must be timelock"
            )
        if new_delay < 0:
            raise InputValidationError("Minimum delay cannot be negative")
        return self._replace(min_delay=new_delay)

    def update_parameter(self, caller: Address, parameter: str, value: int) -> Timelock:
        if parameter != "min_delay":
            raise InputValidationError(f"Unknown timelock parameter: {parameter}")
        return self.update_delay(caller, value)

    def grant_role(self, caller: Address, role: str, account: Address) -> Timelock:
        if self.self_administered and role == DEFAULT_ADMIN_ROLE:
            raise StateError("Timelock is self-administered; admin set is fixed")
        return self._replace(roles=self.roles.grant_role(caller, role, account))

    def revoke_role(self, caller: Address, role: str, account: Address) -> Timelock:
        if self.self_administered and role == DEFAULT_ADMIN_ROLE:
            raise StateError("Timelock is self-administered; admin set is fixed")
        return self._replace(roles=self.roles.revoke_role(caller, role, account))

    def hand_over_administration(self, caller: Address) -> Timelock:
        """One-way transition: the timelock becomes its own only administrator."""
        self.roles.require_role(DEFAULT_ADMIN_ROLE, caller)
        if self.self_administered:
            raise StateError("Timelock is already self-administered")
        roles = self.roles
        for admin in self.roles.role_members(DEFAULT_ADMIN_ROLE) - {self.address}:
            roles = roles.revoke(DEFAULT_ADMIN_ROLE, admin)
        roles = roles.grant(DEFAULT_ADMIN_ROLE, self.address)
        log.info("Timelock {} is now self-administered", self.address)
        return self._replace(roles=roles, self_administered=True)

    def _replace(self, **changes: Any) -> Timelock:
        data = {
            "address": self.address,
            "min_delay": self.min_delay,
            "roles": self.roles,
            "operations": self.operations,
            "self_administered": self.self_administered,
        }
        data.update(changes)
        return Timelock(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "min_delay": self.min_delay,
            "self_administered": self.self_administered,
            "roles": self.roles.to_dict(),
            "operations": {
                operation_id: operation.to_dict()
                for operation_id, operation in self.operations.items()
            },
        }
