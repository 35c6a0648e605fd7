"""
Semantic type aliases for governance and treasury datastructures.

This module provides meaningful type aliases that make the codebase more
self-documenting by replacing raw types like str and int with semantic
aliases for addresses, block numbers and token amounts.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, localcontext
from typing import Any

# Principal identifiers
type Address = str
type RoleName = str

# Temporal types
type BlockNumber = int
type Timestamp = int
type DurationSeconds = int
type DurationBlocks = int

# Value types
type TokenAmount = int
type VotingWeight = int
type Percentage = int

# Hash identifiers
type ProposalId = str
type OperationId = str
type DescriptionHash = str
type Calldata = bytes

ZERO_ADDRESS: Address = "0x" + "0" * 40
NATIVE_TOKEN: Address = ZERO_ADDRESS
EMPTY_HASH: str = "0x" + "0" * 64

SECONDS_PER_DAY: DurationSeconds = 86400
DEFAULT_DECIMALS = 18
# Wide enough for any uint256 amount.
DECIMAL_PRECISION = 100


def hash_bytes(data: bytes) -> str:
    """Hash raw bytes into a 0x-prefixed hex digest."""
    return "0x" + hashlib.sha256(data).hexdigest()


def hash_description(description: str) -> DescriptionHash:
    """Hash a human-readable proposal description."""
    return hash_bytes(description.encode("utf-8"))


def canonical_json(data: Any) -> bytes:
    """Deterministic JSON encoding used for calldata and hashing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def derive_contract_address(deployer: Address, nonce: int) -> Address:
    """Derive a deterministic contract address from deployer and nonce."""
    digest = hashlib.sha256(f"{deployer}:{nonce}".encode()).hexdigest()
    return "0x" + digest[-40:]


def parse_units(value: str | int | Decimal, decimals: int = DEFAULT_DECIMALS) -> TokenAmount:
    """Convert a human-readable amount ("499.5") into integer base units."""
    with localcontext(prec=DECIMAL_PRECISION):
        scaled = Decimal(str(value)).scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {value} has more than {decimals} decimals")
    return int(scaled)


def format_units(amount: TokenAmount, decimals: int = DEFAULT_DECIMALS) -> str:
    """Convert integer base units back into a human-readable decimal string."""
    with localcontext(prec=DECIMAL_PRECISION):
        scaled = Decimal(amount).scaleb(-decimals).normalize()
    return format(scaled, "f")
