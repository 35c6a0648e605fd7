"""Scripted scenarios shared by the scenario and CLI tests."""

FAST_SETTINGS = {
    "voting_delay": 1,
    "voting_period": 5,
    "timelock_min_delay": 60,
    "grace_period_blocks": 10,
}


def pay_carol_scenario() -> dict:
    """Pass, queue and execute a 100 unit payment, then drain the rest of the day's cap."""
    return {
        "settings": dict(FAST_SETTINGS),
        "steps": [
            {"op": "mint", "to": "alice", "amount": "1000"},
            {"op": "delegate", "account": "alice"},
            {"op": "mint", "to": "bob", "amount": "500"},
            {"op": "delegate", "account": "bob"},
            {"op": "mine"},
            {"op": "deposit", "sender": "donor", "token": "native", "amount": "5000"},
            {
                "op": "propose",
                "id": "p1",
                "proposer": "alice",
                "description": "Pay carol",
                "calls": [
                    {
                        "target": "treasury",
                        "action": {
                            "action": "treasury_withdrawal",
                            "token": "native",
                            "recipient": "carol",
                            "amount": "100",
                        },
                    }
                ],
            },
            {"op": "expect_state", "proposal": "p1", "state": "pending"},
            {"op": "mine"},
            {"op": "vote", "proposal": "p1", "voter": "alice", "support": "for"},
            {"op": "vote", "proposal": "p1", "voter": "bob", "support": "against"},
            {
                "op": "vote",
                "proposal": "p1",
                "voter": "bob",
                "support": "for",
                "expect_error": "vote already cast",
            },
            {"op": "expect_state", "proposal": "p1", "state": "active"},
            {"op": "mine", "blocks": 6},
            {"op": "expect_state", "proposal": "p1", "state": "succeeded"},
            {"op": "queue", "proposal": "p1"},
            {
                "op": "execute",
                "proposal": "p1",
                "expect_error": "operation is not ready",
            },
            {"op": "advance_time", "seconds": 60},
            {"op": "execute", "proposal": "p1"},
            {"op": "expect_state", "proposal": "p1", "state": "executed"},
            {
                "op": "withdraw",
                "caller": "deployer",
                "token": "native",
                "to": "carol",
                "amount": "900.5",
                "expect_error": "Daily withdrawal limit exceeded",
            },
            {
                "op": "withdraw",
                "caller": "deployer",
                "token": "native",
                "to": "carol",
                "amount": "900",
            },
        ],
    }
