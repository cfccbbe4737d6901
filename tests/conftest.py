"""
tests/conftest.py

Shared fixtures: a fresh world per test, an engine with fees off, one with
fees on, and a registered in-memory token. Accounts live in helpers/accounts.py.
"""

import pytest

from helpers.accounts import COLLECTOR, FEE, OWNER, PAYER, TOKEN
from multisend.chain.world import WorldState
from multisend.core.models import WEI_PER_ETHER
from multisend.settlement.engine import MultiSendEngine
from multisend.tokens.memory import InMemoryTokenLedger


@pytest.fixture
def world():
    w = WorldState()
    w.fund(PAYER, 100 * WEI_PER_ETHER)
    return w


@pytest.fixture
def engine(world):
    return MultiSendEngine(world, owner=OWNER)


@pytest.fixture
def fee_engine(world):
    return MultiSendEngine(
        world,
        owner=         OWNER,
        fee_collector= COLLECTOR,
        flat_fee=      FEE,
        fees_enabled=  True,
    )


@pytest.fixture
def token(world):
    ledger = InMemoryTokenLedger(TOKEN, symbol="TKN")
    world.register_token(ledger)
    ledger.mint(PAYER, 10 ** 24)
    return ledger
