"""
govtreasury - Governance proposal lifecycle and treasury withdrawal guard.

Deterministic, in-process state machines for collective fund movement:

- **datastructures**: immutable governor, timelock, treasury, voting ledger,
  role registry, actions and events
- **core**: error taxonomy, logging, the composed ``GovernanceSystem`` and
  scenario replay
- **cli**: the ``govtreasury`` command

## Quick Start

```python
from govtreasury import GovernanceSystem, TreasuryWithdrawal, Call, proposal_arrays

system = GovernanceSystem.deploy("deployer")
system = system.mint("alice", 10**24).delegate("alice", "alice").mine()
call = Call(system.addresses.treasury, TreasuryWithdrawal("0x" + "0" * 40, "bob", 10))
system, proposal_id = system.propose_calls("alice", [call], "Pay bob")
```
"""

from .datastructures import (
    Action,
    AllowlistedCall,
    Call,
    ChainClock,
    GovernanceEvent,
    Governor,
    GovernorConfig,
    ParameterUpdate,
    ProposalState,
    RoleRegistry,
    RoleUpdate,
    Timelock,
    Treasury,
    TreasuryWithdrawal,
    VoteSupport,
    VotesLedger,
)
from .core import (
    AuthorizationError,
    GovernanceError,
    InputValidationError,
    ResourceLimitError,
    StateError,
)
from .core.system import GovernanceLedger, GovernanceSystem, proposal_arrays

__version__ = "0.1.0"

__all__ = [
    "Action",
    "AllowlistedCall",
    "AuthorizationError",
    "Call",
    "ChainClock",
    "GovernanceError",
    "GovernanceEvent",
    "GovernanceLedger",
    "GovernanceSystem",
    "Governor",
    "GovernorConfig",
    "InputValidationError",
    "ParameterUpdate",
    "ProposalState",
    "ResourceLimitError",
    "RoleRegistry",
    "RoleUpdate",
    "StateError",
    "Timelock",
    "Treasury",
    "TreasuryWithdrawal",
    "VoteSupport",
    "VotesLedger",
    "proposal_arrays",
]
