"""
Treasury with a rolling daily withdrawal guard.

The treasury holds native currency and tokens, keeps a registry of tracked
assets and enforces one combined 24-hour withdrawal budget across all of
them, whoever the authorized caller is (governance timelock or AI
operator). Amounts of different assets are summed directly into the same
counter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hypothesis import strategies as st

from ..core.errors import InputValidationError, ResourceLimitError
from ..core.logging import component_logger
from .access_control import (
    AI_CONTROLLER_ROLE,
    DEFAULT_ADMIN_ROLE,
    GOVERNOR_ROLE,
    RoleRegistry,
)
from .type_aliases import (
    NATIVE_TOKEN,
    SECONDS_PER_DAY,
    ZERO_ADDRESS,
    Address,
    DurationSeconds,
    Timestamp,
    TokenAmount,
)

log = component_logger("treasury")

DAILY_LIMIT_EXCEEDED = "Daily withdrawal limit exceeded"
INSUFFICIENT_BALANCE = "Insufficient balance"


@dataclass(frozen=True, slots=True)
class Asset:
    """A tracked treasury asset."""

    token: Address
    name: str
    asset_type: str
    is_active: bool = True

    def __post_init__(self) -> None:
        """Validate asset."""
        if not self.token:
            raise InputValidationError("Asset token cannot be empty")
        if not self.name:
            raise InputValidationError("Asset name cannot be empty")
        if not self.asset_type:
            raise InputValidationError("Asset type cannot be empty")

    @property
    def is_native(self) -> bool:
        return self.token == NATIVE_TOKEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "name": self.name,
            "asset_type": self.asset_type,
            "is_active": self.is_active,
        }


@dataclass(frozen=True, slots=True)
class WithdrawalLedger:
    """Rolling 24-hour withdrawal accounting."""

    daily_limit: TokenAmount
    today_total: TokenAmount = 0
    period_start: Timestamp = 0
    window_seconds: DurationSeconds = SECONDS_PER_DAY

    def __post_init__(self) -> None:
        """Validate withdrawal ledger."""
        if self.daily_limit <= 0:
            raise ValueError("Daily limit must be positive")
        if self.today_total < 0:
            raise ValueError("Withdrawn total cannot be negative")
        if self.today_total > self.daily_limit:
            raise ValueError("Withdrawn total cannot exceed daily limit")
        if self.window_seconds <= 0:
            raise ValueError("Window length must be positive")

    def window_elapsed(self, now: Timestamp) -> bool:
        return now - self.period_start >= self.window_seconds

    def rolled(self, now: Timestamp) -> WithdrawalLedger:
        """Ledger as seen at ``now``, with the window reset if it has elapsed."""
        if not self.window_elapsed(now):
            return self
        return WithdrawalLedger(
            daily_limit=self.daily_limit,
            today_total=0,
            period_start=now,
            window_seconds=self.window_seconds,
        )

    def remaining(self, now: Timestamp) -> TokenAmount:
        current = self.rolled(now)
        return current.daily_limit - current.today_total

    def record(self, amount: TokenAmount, now: Timestamp) -> WithdrawalLedger:
        """Account for a withdrawal of ``amount``, or reject it whole."""
        current = self.rolled(now)
        if current.today_total + amount > current.daily_limit:
            raise ResourceLimitError(DAILY_LIMIT_EXCEEDED)
        return WithdrawalLedger(
            daily_limit=current.daily_limit,
            today_total=current.today_total + amount,
            period_start=current.period_start,
            window_seconds=current.window_seconds,
        )

    def with_limit(self, new_limit: TokenAmount) -> WithdrawalLedger:
        """Change the limit. The running total is kept; only future withdrawals see the new cap."""
        return WithdrawalLedger(
            daily_limit=new_limit,
            today_total=min(self.today_total, new_limit),
            period_start=self.period_start,
            window_seconds=self.window_seconds,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "daily_limit": self.daily_limit,
            "today_total": self.today_total,
            "period_start": self.period_start,
            "window_seconds": self.window_seconds,
        }


@dataclass(frozen=True, slots=True)
class Treasury:
    """Immutable treasury state."""

    address: Address
    withdrawal_ledger: WithdrawalLedger
    roles: RoleRegistry = field(default_factory=RoleRegistry)
    assets: dict[Address, Asset] = field(default_factory=dict)
    balances: dict[Address, TokenAmount] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate treasury."""
        if not self.address:
            raise ValueError("Treasury address cannot be empty")
        if any(balance < 0 for balance in self.balances.values()):
            raise ValueError("Treasury balances cannot be negative")

    @classmethod
    def create(
        cls,
        address: Address,
        governor: Address,
        admin: Address,
        daily_limit: TokenAmount,
        now: Timestamp,
    ) -> Treasury:
        """Create a treasury governed by ``governor`` and administered by ``admin``."""
        if not governor or governor == ZERO_ADDRESS:
            raise InputValidationError("Governor cannot be the zero address")
        roles = RoleRegistry.with_grants(
            [
                (DEFAULT_ADMIN_ROLE, admin),
                (GOVERNOR_ROLE, admin),
                (GOVERNOR_ROLE, governor),
            ]
        )
        return cls(
            address=address,
            withdrawal_ledger=WithdrawalLedger(daily_limit=daily_limit, period_start=now),
            roles=roles,
        )

    # Views

    def get_token_balance(self, token: Address) -> TokenAmount:
        return self.balances.get(token, 0)

    def get_all_assets(self) -> list[Address]:
        return list(self.assets)

    def get_asset(self, token: Address) -> Asset | None:
        return self.assets.get(token)

    @property
    def daily_withdrawal_limit(self) -> TokenAmount:
        return self.withdrawal_ledger.daily_limit

    def remaining_allowance(self, now: Timestamp) -> TokenAmount:
        return self.withdrawal_ledger.remaining(now)

    # Fund management

    def deposit(self, sender: Address, token: Address, amount: TokenAmount) -> Treasury:
        """Credit a deposit. ``NATIVE_TOKEN`` deposits model plain value transfers."""
        if not sender:
            raise InputValidationError("Sender cannot be empty")
        if not token:
            raise InputValidationError("Token cannot be empty")
        if amount <= 0:
            raise InputValidationError("Deposit amount must be positive")
        balances = dict(self.balances)
        balances[token] = balances.get(token, 0) + amount
        log.debug("Deposit of {} {} from {}", amount, token, sender)
        return self._replace(balances=balances)

    def withdraw(
        self,
        caller: Address,
        token: Address,
        to: Address,
        amount: TokenAmount,
        now: Timestamp,
    ) -> Treasury:
        """Withdraw funds under the daily limit.

        Order of checks: authorization, input validation, lazy window reset,
        daily cap, balance. Every failure raises before anything changes.
        """
        self.roles.require_role(GOVERNOR_ROLE, caller)
        if not to or to == ZERO_ADDRESS:
            raise InputValidationError("Cannot withdraw to the zero address")
        if amount <= 0:
            raise InputValidationError("Withdrawal amount must be positive")

        ledger = self.withdrawal_ledger.record(amount, now)
        balance = self.get_token_balance(token)
        if balance < amount:
            raise ResourceLimitError(INSUFFICIENT_BALANCE)

        balances = dict(self.balances)
        balances[token] = balance - amount
        log.info(
            "Withdrawal of {} {} to {} by {} ({} of {} used today)",
            amount,
            token,
            to,
            caller,
            ledger.today_total,
            ledger.daily_limit,
        )
        return self._replace(balances=balances, withdrawal_ledger=ledger)

    def set_daily_withdrawal_limit(
        self, caller: Address, new_limit: TokenAmount
    ) -> Treasury:
        self.roles.require_role(DEFAULT_ADMIN_ROLE, caller)
        if new_limit <= 0:
            raise InputValidationError("Daily limit must be greater than zero")
        return self._replace(withdrawal_ledger=self.withdrawal_ledger.with_limit(new_limit))

    # Asset registry

    def add_asset(
        self, caller: Address, token: Address, name: str, asset_type: str
    ) -> Treasury:
        self.roles.require_role(GOVERNOR_ROLE, caller)
        if token in self.assets:
            raise InputValidationError("Asset already exists")
        asset = Asset(token=token, name=name, asset_type=asset_type)
        assets = dict(self.assets)
        assets[token] = asset
        return self._replace(assets=assets)

    def set_asset_active(self, caller: Address, token: Address, active: bool) -> Treasury:
        self.roles.require_role(GOVERNOR_ROLE, caller)
        asset = self.assets.get(token)
        if asset is None:
            raise InputValidationError("Asset does not exist")
        assets = dict(self.assets)
        assets[token] = Asset(
            token=asset.token,
            name=asset.name,
            asset_type=asset.asset_type,
            is_active=active,
        )
        return self._replace(assets=assets)

    # Roles

    def set_ai_controller(self, caller: Address, controller: Address) -> Treasury:
        """Grant an AI operator both the AI-controller and governor roles."""
        self.roles.require_role(DEFAULT_ADMIN_ROLE, caller)
        if not controller or controller == ZERO_ADDRESS:
            raise InputValidationError("AI controller cannot be the zero address")
        roles = self.roles.grant(AI_CONTROLLER_ROLE, controller).grant(
            GOVERNOR_ROLE, controller
        )
        return self._replace(roles=roles)

    def grant_role(self, caller: Address, role: str, account: Address) -> Treasury:
        return self._replace(roles=self.roles.grant_role(caller, role, account))

    def revoke_role(self, caller: Address, role: str, account: Address) -> Treasury:
        return self._replace(roles=self.roles.revoke_role(caller, role, account))

    def update_parameter(self, caller: Address, parameter: str, value: int) -> Treasury:
        if parameter != "daily_withdrawal_limit":
            raise InputValidationError(f"Unknown treasury parameter: {parameter}")
        return self.set_daily_withdrawal_limit(caller, value)

    def _replace(self, **changes: Any) -> Treasury:
        data = {
            "address": self.address,
            "withdrawal_ledger": self.withdrawal_ledger,
            "roles": self.roles,
            "assets": self.assets,
            "balances": self.balances,
        }
        data.update(changes)
        return Treasury(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "withdrawal_ledger": self.withdrawal_ledger.to_dict(),
            "roles": self.roles.to_dict(),
            "assets": [asset.to_dict() for asset in self.assets.values()],
            "balances": dict(self.balances),
        }


# Hypothesis strategies for property-based testing


def withdrawal_sequence_strategy(
    daily_limit: TokenAmount,
) -> st.SearchStrategy[list[tuple[TokenAmount, DurationSeconds]]]:
    """Generate (amount, seconds-since-previous) withdrawal attempts."""
    return st.lists(
        st.tuples(
            st.integers(min_value=1, max_value=daily_limit * 2),
            st.integers(min_value=0, max_value=SECONDS_PER_DAY // 2),
        ),
        max_size=25,
    )
