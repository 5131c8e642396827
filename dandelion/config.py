"""
Environment-sourced configuration for the airdrop.

Values are read once by ``load_config`` into an immutable ``AppConfig`` that
is passed to every component needing it.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from dandelion.exceptions import ConfigurationError

NETWORKS = ("devnet", "testnet", "mainnet-beta")
PLACEHOLDER_PRIVATE_KEY = "your_private_key_here"
MAX_RECIPIENTS_PER_TX = 10
LARGE_AIRDROP_THRESHOLD = 50_000

DEFAULT_ENV_FILES = ("script.env", ".env")


@dataclass(frozen=True)
class FeeSchedule:
    """Empirical Solana cost approximations used by the cost estimator (SOL)."""
    rent_per_account: Decimal = Decimal("0.00203928")
    base_fee: Decimal = Decimal("0.000005")
    priority_fee: Decimal = Decimal("0.00005")


@dataclass(frozen=True)
class AppConfig:
    """Configuration for a distribution run."""
    network: str = "devnet"
    rpc_url: str = "https://api.devnet.solana.com"
    private_key: str = ""
    total_recipients: int = 5000
    tokens_per_recipient: Decimal = Decimal("0.8")
    recipients_per_tx: int = 10
    batch_delay: float = 0.5
    compute_unit_limit: int = 300_000
    compute_unit_price: int = 50_000  # micro-lamports per compute unit
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key) and self.private_key != PLACEHOLDER_PRIVATE_KEY

    @property
    def is_devnet(self) -> bool:
        return self.network == "devnet"


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if not value.is_finite():
        raise ConfigurationError(f"{name} must be a finite number, got {raw!r}")
    return value


def load_env_files(extra: Optional[str] = None, files: Sequence[str] = DEFAULT_ENV_FILES) -> None:
    """Load dotenv files into the process environment. Earlier files win."""
    if extra:
        load_dotenv(extra)
    for path in files:
        load_dotenv(path)


def load_config() -> AppConfig:
    """Build an AppConfig from environment variables."""
    network = os.getenv("NETWORK", "devnet").strip()
    if network not in NETWORKS:
        raise ConfigurationError(f"NETWORK must be one of {', '.join(NETWORKS)}, got {network!r}")

    fees = FeeSchedule(
        rent_per_account=_env_decimal("RENT_PER_ACCOUNT", "0.00203928"),
        base_fee=_env_decimal("BASE_FEE", "0.000005"),
        priority_fee=_env_decimal("PRIORITY_FEE", "0.00005"),
    )

    return AppConfig(
        network=network,
        rpc_url=os.getenv("RPC_URL", "https://api.devnet.solana.com"),
        private_key=os.getenv("PRIVATE_KEY", "").strip(),
        total_recipients=_env_int("TOTAL_RECIPIENTS", "5000"),
        tokens_per_recipient=_env_decimal("TOKENS_PER_RECIPIENT", "0.8"),
        recipients_per_tx=_env_int("RECIPIENTS_PER_TX", "10"),
        batch_delay=_env_float("BATCH_DELAY", "0.5"),
        compute_unit_limit=_env_int("COMPUTE_UNIT_LIMIT", "300000"),
        compute_unit_price=_env_int("COMPUTE_UNIT_PRICE", "50000"),
        fees=fees,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR", "logs"),
    )


def validate_config(cfg: AppConfig) -> List[str]:
    """Return warnings about risky but usable settings."""
    warnings = []

    if not cfg.has_private_key:
        warnings.append("Private key not specified in .env; a new test wallet will be created for devnet")

    if cfg.recipients_per_tx > MAX_RECIPIENTS_PER_TX:
        warnings.append(
            f"RECIPIENTS_PER_TX > {MAX_RECIPIENTS_PER_TX} may cause transaction size errors (recommended: 8-10)"
        )

    if cfg.total_recipients > LARGE_AIRDROP_THRESHOLD:
        warnings.append(
            f"More than {LARGE_AIRDROP_THRESHOLD:,} recipients will take a long time and cost a lot of SOL"
        )

    return warnings
