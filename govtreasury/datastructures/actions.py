"""
Proposal actions.

A proposal call is (target, value, calldata). Instead of arbitrary code,
calldata is the canonical JSON encoding of one of a closed set of actions.
Decoding rejects anything outside this set, so an executed proposal can
only do what these actions describe.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from hypothesis import strategies as st

from ..core.errors import InputValidationError
from .type_aliases import (
    ZERO_ADDRESS,
    Address,
    Calldata,
    RoleName,
    TokenAmount,
    canonical_json,
)


def _is_integer(value: Any) -> bool:
    # bool is an int subclass but never a valid amount
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class TreasuryWithdrawal:
    """Move ``amount`` of ``token`` from the target treasury to ``recipient``."""

    token: Address
    recipient: Address
    amount: TokenAmount

    kind = "treasury_withdrawal"

    def __post_init__(self) -> None:
        if not self.token:
            raise InputValidationError("Withdrawal token cannot be empty")
        if not self.recipient or self.recipient == ZERO_ADDRESS:
            raise InputValidationError("Withdrawal recipient cannot be the zero address")
        if not _is_integer(self.amount):
            raise InputValidationError("Withdrawal amount must be an integer")
        if self.amount <= 0:
            raise InputValidationError("Withdrawal amount must be positive")

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.kind,
            "token": self.token,
            "recipient": self.recipient,
            "amount": self.amount,
        }


@dataclass(frozen=True, slots=True)
class ParameterUpdate:
    """Set a named numeric parameter on the target component."""

    parameter: str
    value: int

    kind = "parameter_update"

    def __post_init__(self) -> None:
        if not self.parameter:
            raise InputValidationError("Parameter name cannot be empty")
        if not _is_integer(self.value):
            raise InputValidationError(f"Parameter {self.parameter} must be an integer")

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.kind, "parameter": self.parameter, "value": self.value}


@dataclass(frozen=True, slots=True)
class RoleUpdate:
    """Grant or revoke a role on the target component."""

    role: RoleName
    account: Address
    grant: bool = True

    kind = "role_update"

    def __post_init__(self) -> None:
        if not self.role:
            raise InputValidationError("Role cannot be empty")
        if not self.account:
            raise InputValidationError("Account cannot be empty")
        if not isinstance(self.grant, bool):
            raise InputValidationError("Role update grant must be a boolean")

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.kind,
            "role": self.role,
            "account": self.account,
            "grant": self.grant,
        }


@dataclass(frozen=True, slots=True)
class AllowlistedCall:
    """Call a function registered in the system's call allowlist."""

    function: str
    args: tuple[Any, ...] = field(default_factory=tuple)

    kind = "allowlisted_call"

    def __post_init__(self) -> None:
        if not self.function:
            raise InputValidationError("Function name cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.kind, "function": self.function, "args": list(self.args)}


type Action = TreasuryWithdrawal | ParameterUpdate | RoleUpdate | AllowlistedCall

ACTION_TYPES: dict[str, type] = {
    TreasuryWithdrawal.kind: TreasuryWithdrawal,
    ParameterUpdate.kind: ParameterUpdate,
    RoleUpdate.kind: RoleUpdate,
    AllowlistedCall.kind: AllowlistedCall,
}


def encode_action(action: Action) -> Calldata:
    """Canonical calldata for an action."""
    return canonical_json(action.to_dict())


def decode_action(calldata: Calldata) -> Action:
    """Parse calldata back into an action, rejecting unknown encodings."""
    try:
        data = json.loads(bytes(calldata).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InputValidationError(f"Undecodable calldata: {e}") from e
    if not isinstance(data, dict):
        raise InputValidationError("Calldata must encode an object")

    kind = data.pop("action", None)
    action_type = ACTION_TYPES.get(kind)
    if action_type is None:
        raise InputValidationError(f"Unknown action: {kind!r}")

    if action_type is AllowlistedCall:
        data["args"] = tuple(data.get("args", ()))
    try:
        return action_type(**data)
    except TypeError as e:
        raise InputValidationError(f"Malformed {kind} calldata: {e}") from e


@dataclass(frozen=True, slots=True)
class Call:
    """One proposal call: target component, attached value and action."""

    target: Address
    action: Action
    value: TokenAmount = 0

    def __post_init__(self) -> None:
        if not self.target:
            raise InputValidationError("Call target cannot be empty")
        if not _is_integer(self.value):
            raise InputValidationError("Call value must be an integer")
        if self.value < 0:
            raise InputValidationError("Call value cannot be negative")

    @property
    def calldata(self) -> Calldata:
        return encode_action(self.action)


def calls_to_arrays(
    calls: Sequence[Call],
) -> tuple[tuple[Address, ...], tuple[TokenAmount, ...], tuple[Calldata, ...]]:
    """Split calls into the (targets, values, calldatas) arrays of a proposal."""
    return (
        tuple(call.target for call in calls),
        tuple(call.value for call in calls),
        tuple(call.calldata for call in calls),
    )


def arrays_to_calls(
    targets: Sequence[Address],
    values: Sequence[TokenAmount],
    calldatas: Sequence[Calldata],
) -> tuple[Call, ...]:
    """Validate and decode proposal arrays into calls."""
    if not (len(targets) == len(values) == len(calldatas)):
        raise InputValidationError("Governor: invalid proposal length")
    if not targets:
        raise InputValidationError("Governor: empty proposal")
    return tuple(
        Call(target=target, value=value, action=decode_action(calldata))
        for target, value, calldata in zip(targets, values, calldatas)
    )


# Hypothesis strategies for property-based testing

_addresses = st.text(
    alphabet="0123456789abcdef", min_size=40, max_size=40
).map(lambda digits: "0x" + digits).filter(lambda address: address != ZERO_ADDRESS)


def action_strategy() -> st.SearchStrategy[Action]:
    """Generate valid actions for testing."""
    return st.one_of(
        st.builds(
            TreasuryWithdrawal,
            token=_addresses,
            recipient=_addresses,
            amount=st.integers(min_value=1, max_value=10**27),
        ),
        st.builds(
            ParameterUpdate,
            parameter=st.sampled_from(["daily_withdrawal_limit", "voting_period"]),
            value=st.integers(min_value=0, max_value=10**27),
        ),
        st.builds(
            RoleUpdate,
            role=st.sampled_from(["GOVERNOR_ROLE", "PROPOSER_ROLE"]),
            account=_addresses,
            grant=st.booleans(),
        ),
        st.builds(
            AllowlistedCall,
            function=st.text(min_size=1, max_size=20),
            args=st.lists(st.integers(), max_size=3).map(tuple),
        ),
    )
