"""Token discovery, balance checks and devnet test token minting."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.client import Token
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from dandelion.utils import format_number

logger = logging.getLogger(__name__)

TOKEN_PROGRAMS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

TEST_TOKEN_DECIMALS = 6
TEST_TOKEN_SUPPLY = 10_000_000


@dataclass(frozen=True)
class TokenInfo:
    """A token held by the payer wallet."""
    mint: Pubkey
    token_account: Pubkey
    program_id: Pubkey
    decimals: int
    balance: int  # base units
    symbol: Optional[str] = None

    @property
    def display_balance(self) -> Decimal:
        return Decimal(self.balance).scaleb(-self.decimals)

    @property
    def is_token_2022(self) -> bool:
        return self.program_id == TOKEN_2022_PROGRAM_ID


@dataclass(frozen=True)
class BalanceCheck:
    sufficient: bool
    required: Decimal
    available: Decimal


def get_wallet_tokens(client: Client, owner: Pubkey) -> List[TokenInfo]:
    """Return all non-empty token holdings of `owner` (SPL and Token-2022), largest first."""
    tokens = []

    for program_id in TOKEN_PROGRAMS:
        response = client.get_token_accounts_by_owner_json_parsed(owner, TokenAccountOpts(program_id=program_id))

        for account in response.value:
            info = account.account.data.parsed["info"]
            balance = int(info["tokenAmount"]["amount"])

            if balance == 0:
                continue

            tokens.append(TokenInfo(
                mint=Pubkey.from_string(info["mint"]),
                token_account=account.pubkey,
                program_id=program_id,
                decimals=int(info["tokenAmount"]["decimals"]),
                balance=balance,
            ))

    tokens.sort(key=lambda t: t.balance, reverse=True)
    logger.debug(f"Found {len(tokens)} token holdings for {owner}")
    return tokens


def format_token_list(tokens: List[TokenInfo]) -> str:
    """Format token holdings for console output."""
    if not tokens:
        return "  No tokens found on this wallet\n"

    lines = []
    for index, token in enumerate(tokens, start=1):
        label = "[T22]" if token.is_token_2022 else "[SPL]"
        mint = str(token.mint)
        lines.append(f"  [{index}] {label} {mint[:8]}...{mint[-4:]}")
        lines.append(f"      Balance: {format_number(token.display_balance)} tokens")
        lines.append(f"      Mint: {mint}")
        lines.append("")

    return "\n".join(lines) + "\n"


def check_sufficient_balance(token: TokenInfo, total_recipients: int, tokens_per_recipient: Decimal) -> BalanceCheck:
    """Check the token balance covers the whole distribution."""
    required = total_recipients * Decimal(str(tokens_per_recipient))
    available = token.display_balance
    return BalanceCheck(sufficient=available >= required, required=required, available=available)


def create_test_token(client: Client, payer: Keypair, mint_amount: int = TEST_TOKEN_SUPPLY) -> TokenInfo:
    """Create a devnet SPL mint owned by the payer and mint `mint_amount` tokens to it."""
    logger.info("Creating test token...")
    token = Token.create_mint(
        conn=client,
        payer=payer,
        mint_authority=payer.pubkey(),
        decimals=TEST_TOKEN_DECIMALS,
        program_id=TOKEN_PROGRAM_ID,
        skip_confirmation=False,
    )
    logger.info(f"Mint created: {token.pubkey}")

    token_account = token.create_associated_token_account(payer.pubkey(), skip_confirmation=False)
    logger.info(f"Token account: {token_account}")

    raw_amount = mint_amount * 10 ** TEST_TOKEN_DECIMALS
    token.mint_to(
        dest=token_account,
        mint_authority=payer,
        amount=raw_amount,
        opts=TxOpts(skip_confirmation=False, preflight_commitment=Confirmed),
    )
    logger.info(f"Minted {mint_amount:,} TEST")

    return TokenInfo(
        mint=token.pubkey,
        token_account=token_account,
        program_id=TOKEN_PROGRAM_ID,
        decimals=TEST_TOKEN_DECIMALS,
        balance=raw_amount,
        symbol="TEST",
    )
