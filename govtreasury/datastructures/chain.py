"""
Deterministic chain clock.

Voting windows are measured in blocks while the timelock and the daily
withdrawal window are measured in seconds. ``ChainClock`` carries both and
only moves forward.
"""

from __future__ import annotations

from dataclasses import dataclass

from .type_aliases import BlockNumber, DurationSeconds, Timestamp


@dataclass(frozen=True, slots=True)
class ChainClock:
    """Current block number and block timestamp."""

    block_number: BlockNumber = 1
    timestamp: Timestamp = 1_700_000_000
    seconds_per_block: DurationSeconds = 12

    def __post_init__(self) -> None:
        """Validate chain clock."""
        if self.block_number < 0:
            raise ValueError("Block number cannot be negative")
        if self.timestamp < 0:
            raise ValueError("Timestamp cannot be negative")
        if self.seconds_per_block <= 0:
            raise ValueError("Seconds per block must be positive")

    def mine(self, blocks: int = 1) -> ChainClock:
        """Advance by ``blocks`` blocks, moving time at the configured block rate."""
        if blocks < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        return ChainClock(
            block_number=self.block_number + blocks,
            timestamp=self.timestamp + blocks * self.seconds_per_block,
            seconds_per_block=self.seconds_per_block,
        )

    def advance_time(self, seconds: DurationSeconds) -> ChainClock:
        """Advance the timestamp without producing blocks."""
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        return ChainClock(
            block_number=self.block_number,
            timestamp=self.timestamp + seconds,
            seconds_per_block=self.seconds_per_block,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "seconds_per_block": self.seconds_per_block,
        }
