"""Tests for environment-driven deployment settings."""

import os

import pytest
from pydantic import ValidationError

from govtreasury.config import GovernanceSettings
from govtreasury.datastructures.type_aliases import parse_units


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep stray .env files and GOVTREASURY_ variables out of these tests."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("GOVTREASURY_"):
            monkeypatch.delenv(name)


class TestGovernanceSettings:
    """Test defaults, environment overrides and conversions."""

    def test_defaults(self):
        settings = GovernanceSettings()
        config = settings.to_governor_config()
        assert config.voting_delay == 7200
        assert config.voting_period == 50400
        assert config.quorum_percentage == 4
        assert settings.timelock_min_delay == 86400
        assert settings.daily_withdrawal_limit_units == parse_units(1000)
        assert settings.event_db_path is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("GOVTREASURY_VOTING_PERIOD", "10")
        monkeypatch.setenv("GOVTREASURY_DAILY_WITHDRAWAL_LIMIT", "250.5")
        monkeypatch.setenv("GOVTREASURY_DEBUG_SCOPES", '["datastructures.treasury"]')
        settings = GovernanceSettings()
        assert settings.voting_period == 10
        assert settings.daily_withdrawal_limit_units == parse_units("250.5")
        assert settings.debug_scopes == ("datastructures.treasury",)

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("GOVTREASURY_QUORUM_PERCENTAGE=10\n")
        assert GovernanceSettings().quorum_percentage == 10

    def test_clock(self):
        clock = GovernanceSettings(start_block=5, start_timestamp=1_000).to_clock()
        assert clock.block_number == 5
        assert clock.timestamp == 1_000
        assert clock.seconds_per_block == 12

    @pytest.mark.parametrize(
        "field, value",
        [
            ("quorum_percentage", 101),
            ("voting_period", 0),
            ("daily_withdrawal_limit", "0"),
            ("grace_period_blocks", -1),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            GovernanceSettings(**{field: value})
