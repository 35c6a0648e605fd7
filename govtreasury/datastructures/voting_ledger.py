"""
Voting-weight ledger with block checkpoints.

Balances only carry votes once delegated. Every change to a delegate's
weight (and to the total supply) is recorded as a checkpoint keyed by block
number, so that a proposal can read weights frozen at its snapshot block
regardless of what moved afterwards.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any

from hypothesis import strategies as st

from ..core.errors import InputValidationError, ResourceLimitError
from .type_aliases import ZERO_ADDRESS, Address, BlockNumber, TokenAmount, VotingWeight


@dataclass(frozen=True, slots=True)
class Checkpoints:
    """Ordered (block, value) history with upper-bound lookup."""

    blocks: tuple[BlockNumber, ...] = ()
    values: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        """Validate checkpoint history."""
        if len(self.blocks) != len(self.values):
            raise ValueError("Checkpoint blocks and values must have equal length")
        if any(b2 <= b1 for b1, b2 in zip(self.blocks, self.blocks[1:])):
            raise ValueError("Checkpoint blocks must be strictly increasing")

    def latest(self) -> int:
        return self.values[-1] if self.values else 0

    def upper_lookup(self, block: BlockNumber) -> int:
        """Value of the last checkpoint at or before ``block``."""
        index = bisect.bisect_right(self.blocks, block)
        return self.values[index - 1] if index else 0

    def push(self, block: BlockNumber, value: int) -> Checkpoints:
        """Record ``value`` at ``block``, overwriting a checkpoint in the same block."""
        if self.blocks and block < self.blocks[-1]:
            raise ValueError("Checkpoints cannot be written in the past")
        if self.blocks and block == self.blocks[-1]:
            return Checkpoints(
                blocks=self.blocks, values=self.values[:-1] + (value,)
            )
        return Checkpoints(blocks=self.blocks + (block,), values=self.values + (value,))

    def __len__(self) -> int:
        return len(self.blocks)


@dataclass(frozen=True, slots=True)
class VotesLedger:
    """Immutable balances, delegation and vote checkpoints."""

    name: str = "Governance Token"
    symbol: str = "GOV"
    balances: dict[Address, TokenAmount] = field(default_factory=dict)
    delegates: dict[Address, Address] = field(default_factory=dict)
    vote_checkpoints: dict[Address, Checkpoints] = field(default_factory=dict)
    supply_checkpoints: Checkpoints = field(default_factory=Checkpoints)

    def __post_init__(self) -> None:
        """Validate ledger."""
        if not self.name:
            raise ValueError("Token name cannot be empty")
        if any(amount < 0 for amount in self.balances.values()):
            raise ValueError("Balances cannot be negative")

    # Views

    def balance_of(self, account: Address) -> TokenAmount:
        return self.balances.get(account, 0)

    def delegate_of(self, account: Address) -> Address | None:
        return self.delegates.get(account)

    def total_supply(self) -> TokenAmount:
        return self.supply_checkpoints.latest()

    def get_votes(self, account: Address) -> VotingWeight:
        """Current voting weight of ``account``."""
        checkpoints = self.vote_checkpoints.get(account)
        return checkpoints.latest() if checkpoints else 0

    def get_past_votes(self, account: Address, block: BlockNumber) -> VotingWeight:
        """Voting weight of ``account`` as of ``block``."""
        checkpoints = self.vote_checkpoints.get(account)
        return checkpoints.upper_lookup(block) if checkpoints else 0

    def get_past_total_supply(self, block: BlockNumber) -> TokenAmount:
        return self.supply_checkpoints.upper_lookup(block)

    # Mutations

    def mint(self, to: Address, amount: TokenAmount, block: BlockNumber) -> VotesLedger:
        if not to or to == ZERO_ADDRESS:
            raise InputValidationError("Cannot mint to the zero address")
        if amount <= 0:
            raise InputValidationError("Mint amount must be positive")
        balances = dict(self.balances)
        balances[to] = balances.get(to, 0) + amount
        checkpoints = self._move_votes(None, self.delegate_of(to), amount, block)
        return self._replace(
            balances=balances,
            vote_checkpoints=checkpoints,
            supply_checkpoints=self.supply_checkpoints.push(
                block, self.total_supply() + amount
            ),
        )

    def burn(self, account: Address, amount: TokenAmount, block: BlockNumber) -> VotesLedger:
        if amount <= 0:
            raise InputValidationError("Burn amount must be positive")
        if self.balance_of(account) < amount:
            raise ResourceLimitError("ERC20: burn amount exceeds balance")
        balances = dict(self.balances)
        balances[account] -= amount
        checkpoints = self._move_votes(self.delegate_of(account), None, amount, block)
        return self._replace(
            balances=balances,
            vote_checkpoints=checkpoints,
            supply_checkpoints=self.supply_checkpoints.push(
                block, self.total_supply() - amount
            ),
        )

    def transfer(
        self, sender: Address, to: Address, amount: TokenAmount, block: BlockNumber
    ) -> VotesLedger:
        """Move tokens, and the voting weight delegated from them."""
        if not to or to == ZERO_ADDRESS:
            raise InputValidationError("ERC20: transfer to the zero address")
        if amount <= 0:
            raise InputValidationError("Transfer amount must be positive")
        if self.balance_of(sender) < amount:
            raise ResourceLimitError("ERC20: transfer amount exceeds balance")
        balances = dict(self.balances)
        balances[sender] -= amount
        balances[to] = balances.get(to, 0) + amount
        checkpoints = self._move_votes(
            self.delegate_of(sender), self.delegate_of(to), amount, block
        )
        return self._replace(balances=balances, vote_checkpoints=checkpoints)

    def delegate(
        self, account: Address, delegatee: Address, block: BlockNumber
    ) -> VotesLedger:
        """Point all of ``account``'s voting weight at ``delegatee``."""
        if not delegatee:
            raise InputValidationError("Delegatee cannot be empty")
        previous = self.delegate_of(account)
        delegates = dict(self.delegates)
        delegates[account] = delegatee
        checkpoints = self._move_votes(
            previous, delegatee, self.balance_of(account), block
        )
        return self._replace(delegates=delegates, vote_checkpoints=checkpoints)

    def _move_votes(
        self,
        source: Address | None,
        destination: Address | None,
        amount: TokenAmount,
        block: BlockNumber,
    ) -> dict[Address, Checkpoints]:
        checkpoints = dict(self.vote_checkpoints)
        if source == destination or amount == 0:
            return checkpoints
        if source is not None:
            history = checkpoints.get(source, Checkpoints())
            checkpoints[source] = history.push(block, history.latest() - amount)
        if destination is not None:
            history = checkpoints.get(destination, Checkpoints())
            checkpoints[destination] = history.push(block, history.latest() + amount)
        return checkpoints

    def _replace(self, **changes: Any) -> VotesLedger:
        fields = {
            "name": self.name,
            "symbol": self.symbol,
            "balances": self.balances,
            "delegates": self.delegates,
            "vote_checkpoints": self.vote_checkpoints,
            "supply_checkpoints": self.supply_checkpoints,
        }
        fields.update(changes)
        return VotesLedger(**fields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "total_supply": self.total_supply(),
            "balances": dict(self.balances),
            "delegates": dict(self.delegates),
            "votes": {
                account: history.latest()
                for account, history in self.vote_checkpoints.items()
            },
        }


# Hypothesis strategies for property-based testing


def checkpoints_strategy() -> st.SearchStrategy[Checkpoints]:
    """Generate valid checkpoint histories."""

    @st.composite
    def generate(draw):
        blocks = draw(
            st.lists(
                st.integers(min_value=0, max_value=10_000), unique=True, max_size=30
            )
        )
        blocks.sort()
        values = draw(
            st.lists(
                st.integers(min_value=0, max_value=10**24),
                min_size=len(blocks),
                max_size=len(blocks),
            )
        )
        return Checkpoints(blocks=tuple(blocks), values=tuple(values))

    return generate()
