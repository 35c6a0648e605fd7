"""Pytest configuration and fixtures for govtreasury testing.

Every fixture deploys a fresh, immutable ``GovernanceSystem``; tests derive
new systems from it, so no state leaks between tests.
"""

import pytest
from loguru import logger

from govtreasury.core.system import GovernanceSystem
from tests.governance_helpers import (
    ALICE,
    BOB,
    CAROL,
    DEPLOYER,
    FAST_CONFIG,
    GUARDIAN,
    deploy_fast,
    with_voters,
)


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep loguru output out of the test report."""
    logger.remove()
    yield


@pytest.fixture
def system() -> GovernanceSystem:
    """Freshly deployed system with short voting windows."""
    return deploy_fast()


@pytest.fixture
def three_voters(system: GovernanceSystem) -> GovernanceSystem:
    """Alice, Bob and Carol each hold and self-delegate 1,000,000 votes."""
    return with_voters(system, {ALICE: 1_000_000, BOB: 1_000_000, CAROL: 1_000_000}).mine()


@pytest.fixture
def guarded_system() -> GovernanceSystem:
    """System whose governor has a dedicated canceller."""
    return GovernanceSystem.deploy(DEPLOYER, FAST_CONFIG, cancellers=(GUARDIAN,))
