"""Small helpers shared by the airdrop modules."""

from decimal import Decimal
from typing import List, Sequence, TypeVar

from solders.keypair import Keypair
from solders.pubkey import Pubkey

T = TypeVar("T")

LAMPORTS_PER_SOL = 1_000_000_000


def generate_random_address() -> Pubkey:
    """Return the public key of a fresh keypair. The secret is discarded, so nobody owns the address."""
    return Keypair().pubkey()


def generate_random_addresses(count: int) -> List[Pubkey]:
    """Generate `count` unowned recipient addresses."""
    return [generate_random_address() for _ in range(count)]


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive groups of `size`; the last group holds the remainder."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def format_number(value) -> str:
    """Format a number with thousand separators."""
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.6f}".rstrip("0").rstrip(".")


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports).scaleb(-9)


def format_sol(lamports: int) -> str:
    """Format lamports as SOL with 6 decimal places."""
    return f"{lamports / LAMPORTS_PER_SOL:.6f}"


def progress_bar(current: int, total: int, width: int = 30) -> str:
    percent = current / total if total else 1.0
    filled = round(width * percent)
    bar = "█" * filled + "░" * (width - filled)
    return f"[{bar}] {percent * 100:5.1f}% ({current}/{total})"


def explorer_url(signature: str, network: str) -> str:
    """Solscan link for a transaction signature."""
    if network == "mainnet-beta":
        return f"https://solscan.io/tx/{signature}"
    return f"https://solscan.io/tx/{signature}?cluster={network}"
