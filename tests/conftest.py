from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from spl.token.constants import TOKEN_PROGRAM_ID

from dandelion.config import AppConfig
from dandelion.tokens import TokenInfo


@pytest.fixture
def payer():
    return Keypair()


@pytest.fixture
def token():
    return TokenInfo(
        mint=Keypair().pubkey(),
        token_account=Keypair().pubkey(),
        program_id=TOKEN_PROGRAM_ID,
        decimals=6,
        balance=10_000_000 * 10 ** 6,
    )


@pytest.fixture
def config():
    return AppConfig(batch_delay=0.5)


def make_client(send_results=None, balances=(2_000_000_000, 1_990_000_000)):
    """RPC client double. `send_results` and `balances` items are values or exceptions to raise."""
    client = MagicMock()
    client.get_balance.side_effect = [
        b if isinstance(b, Exception) else SimpleNamespace(value=b) for b in balances
    ]
    client.get_latest_blockhash.return_value = SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))
    if send_results is not None:
        client.send_transaction.side_effect = [
            r if isinstance(r, Exception) else SimpleNamespace(value=r) for r in send_results
        ]
    return client


@pytest.fixture
def client_factory():
    return make_client
