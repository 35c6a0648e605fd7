from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .datastructures.chain import ChainClock
from .datastructures.governance_types import GovernorConfig
from .datastructures.type_aliases import TokenAmount, parse_units


class GovernanceSettings(BaseSettings):
    """Deployment parameters for a governance system."""

    model_config = SettingsConfigDict(
        env_prefix="GOVTREASURY_", env_file=".env", extra="ignore"
    )

    voting_delay: int = Field(
        7200, ge=0, description="Blocks between proposal creation and the voting snapshot."
    )
    voting_period: int = Field(
        50400, gt=0, description="Blocks during which votes are accepted."
    )
    quorum_percentage: int = Field(
        4,
        ge=0,
        le=100,
        description="Share of the voting supply at snapshot that must turn out.",
    )
    proposal_threshold: int = Field(
        0, ge=0, description="Voting weight (base units) required to propose."
    )
    grace_period_blocks: int = Field(
        100800,
        ge=0,
        description="Blocks after the deadline before an unqueued proposal expires; 0 disables expiry.",
    )
    timelock_min_delay: int = Field(
        86400, ge=0, description="Minimum timelock delay in seconds."
    )
    daily_withdrawal_limit: Decimal = Field(
        Decimal("1000"),
        gt=0,
        description="Treasury withdrawal cap per rolling 24 hours, in whole units.",
    )
    token_decimals: int = Field(18, ge=0, description="Decimals of treasury amounts.")
    seconds_per_block: int = Field(12, gt=0, description="Simulated block time.")
    start_block: int = Field(1, ge=0, description="Block number at deployment.")
    start_timestamp: int = Field(
        1_700_000_000, ge=0, description="Chain timestamp at deployment."
    )
    log_level: str = Field("INFO", description="Log level for the loguru sink.")
    debug_scopes: tuple[str, ...] = Field(
        (), description="Modules logging at DEBUG regardless of log_level."
    )
    event_db_path: str | None = Field(
        None, description="sqlite file for emitted events; disabled when unset."
    )

    def to_governor_config(self) -> GovernorConfig:
        return GovernorConfig(
            voting_delay=self.voting_delay,
            voting_period=self.voting_period,
            quorum_percentage=self.quorum_percentage,
            proposal_threshold=self.proposal_threshold,
            grace_period_blocks=self.grace_period_blocks,
        )

    def to_clock(self) -> ChainClock:
        return ChainClock(
            block_number=self.start_block,
            timestamp=self.start_timestamp,
            seconds_per_block=self.seconds_per_block,
        )

    @property
    def daily_withdrawal_limit_units(self) -> TokenAmount:
        return parse_units(self.daily_withdrawal_limit, self.token_decimals)
