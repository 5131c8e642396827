"""Payer wallet loading and devnet test wallet creation."""

import json
import logging

from base58 import b58decode
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from dandelion.exceptions import ConfigurationError
from dandelion.utils import LAMPORTS_PER_SOL

logger = logging.getLogger(__name__)

TEST_WALLET_AIRDROP_SOL = 2
FAUCET_URL = "https://faucet.solana.com/"


def load_keypair(private_key: str) -> Keypair:
    """Load a keypair from a base58 secret or a JSON byte array."""
    try:
        return Keypair.from_bytes(b58decode(private_key))
    except (ValueError, TypeError):
        pass

    try:
        return Keypair.from_bytes(bytes(json.loads(private_key)))
    except (ValueError, TypeError):
        raise ConfigurationError("Invalid private key format. Expected base58 or JSON array.")


def get_wallet_balance(client: Client, pubkey: Pubkey) -> int:
    """Return the wallet balance in lamports."""
    return client.get_balance(pubkey, commitment=Confirmed).value


def create_test_wallet(client: Client) -> Keypair:
    """Create a fresh keypair and request a devnet SOL airdrop for it."""
    keypair = Keypair()

    logger.info(f"New test wallet created: {keypair.pubkey()}")
    # Console only, never to the log file
    print(f"   Private key (base58): {keypair}")
    logger.info(f"Requesting airdrop of {TEST_WALLET_AIRDROP_SOL} SOL on devnet...")

    try:
        signature = client.request_airdrop(keypair.pubkey(), TEST_WALLET_AIRDROP_SOL * LAMPORTS_PER_SOL).value
        client.confirm_transaction(signature, Confirmed)
        logger.info("Airdrop received")
    except Exception as e:
        logger.warning(f"Airdrop failed (possibly rate limited): {e}. Try later or use the faucet: {FAUCET_URL}")

    return keypair
