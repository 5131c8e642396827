#!/usr/bin/env python3
"""
Dandelion: Solana SPL token mass distribution.

Sends a fixed amount of a token held by the payer wallet to freshly
generated addresses, batching transfers into transactions.
"""

import argparse
import logging
import os
import sys
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, TypeVar

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair

from dandelion import __version__
from dandelion.airdrop import AirdropPlan, estimate_cost, execute_airdrop, required_lamports
from dandelion.config import AppConfig, MAX_RECIPIENTS_PER_TX, load_config, load_env_files, validate_config
from dandelion.exceptions import AirdropError, ConfigurationError, InsufficientBalanceError, NoTokensError
from dandelion.reporting import ConsoleReporter
from dandelion.tokens import TokenInfo, check_sufficient_balance, create_test_token, format_token_list, get_wallet_tokens
from dandelion.utils import format_number, generate_random_addresses, lamports_to_sol
from dandelion.wallet import create_test_wallet, get_wallet_balance, load_keypair

logger = logging.getLogger(__name__)

T = TypeVar("T")

BANNER = """
╔═══════════════════════════════════════════════════════════╗
║                  DANDELION CAT                            ║
║           Solana Token Mass Distribution                  ║
╚═══════════════════════════════════════════════════════════╝
"""


@dataclass(frozen=True)
class RunParameters:
    token_index: int  # 1-based
    total_recipients: int
    tokens_per_recipient: Decimal
    recipients_per_tx: int


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> None:
    """Log to a timestamped file in `log_dir` and to stdout."""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    os.makedirs(log_dir, exist_ok=True)
    log_filename = os.path.join(log_dir, f'airdrop_{int(time.time())}.log')
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.FileHandler(log_filename),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Disable noisy HTTP request logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _pick(value: Optional[T], default: T) -> T:
    return default if value is None else value


def validate_token_index(value: int, token_count: int) -> Optional[str]:
    if value < 1 or value > token_count:
        return f"Enter a number from 1 to {token_count}"
    return None


def validate_positive(value) -> Optional[str]:
    if value <= 0:
        return "Must be greater than 0"
    return None


def validate_batch_size(value: int) -> Optional[str]:
    if value < 1:
        return "Minimum 1"
    if value > MAX_RECIPIENTS_PER_TX:
        return f"Maximum {MAX_RECIPIENTS_PER_TX} (transaction size limit)"
    return None


def parse_decimal(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"Not a number: {raw!r}")
    if not value.is_finite():
        raise ValueError(f"Not a finite number: {raw!r}")
    return value


def prompt_value(
    message: str,
    default: T,
    parse: Callable[[str], T],
    validate: Callable[[T], Optional[str]],
    input_func: Callable[[str], str] = input,
) -> T:
    """Ask until the answer parses and validates. An empty answer takes the default."""
    while True:
        raw = input_func(f"{message} [{default}]: ").strip()
        if not raw:
            value = default
        else:
            try:
                value = parse(raw)
            except ValueError:
                print("  Please enter a number")
                continue

        error = validate(value)
        if error:
            print(f"  {error}")
            continue
        return value


def confirm(message: str, input_func: Callable[[str], str] = input) -> bool:
    answer = input_func(f"{message} (yes/no) [no]: ")
    return answer.strip().lower() in ("yes", "y")


def prompt_parameters(
    args: argparse.Namespace,
    config: AppConfig,
    token_count: int,
    input_func: Callable[[str], str] = input,
) -> RunParameters:
    """Collect run parameters interactively; command line flags become the defaults."""
    token_index = prompt_value(
        "Select token number for distribution",
        _pick(args.token_index, 1),
        int,
        lambda v: validate_token_index(v, token_count),
        input_func,
    )
    total_recipients = prompt_value(
        "Number of recipients",
        _pick(args.recipients, config.total_recipients),
        int,
        validate_positive,
        input_func,
    )
    tokens_per_recipient = prompt_value(
        "Tokens per recipient",
        _pick(args.amount, config.tokens_per_recipient),
        parse_decimal,
        validate_positive,
        input_func,
    )
    recipients_per_tx = prompt_value(
        f"Recipients per transaction (max {MAX_RECIPIENTS_PER_TX})",
        _pick(args.batch_size, config.recipients_per_tx),
        int,
        validate_batch_size,
        input_func,
    )
    return RunParameters(token_index, total_recipients, tokens_per_recipient, recipients_per_tx)


def unattended_parameters(args: argparse.Namespace, config: AppConfig, token_count: int) -> RunParameters:
    """Run parameters from flags and configuration, without prompting."""
    params = RunParameters(
        token_index=_pick(args.token_index, 1),
        total_recipients=_pick(args.recipients, config.total_recipients),
        tokens_per_recipient=_pick(args.amount, config.tokens_per_recipient),
        recipients_per_tx=_pick(args.batch_size, config.recipients_per_tx),
    )

    errors = [
        ("token index", validate_token_index(params.token_index, token_count)),
        ("recipients", validate_positive(params.total_recipients)),
        ("tokens per recipient", validate_positive(params.tokens_per_recipient)),
        ("recipients per transaction", validate_batch_size(params.recipients_per_tx)),
    ]
    for name, error in errors:
        if error:
            raise ConfigurationError(f"Invalid {name}: {error}")

    return params


def resolve_payer(client: Client, config: AppConfig) -> Keypair:
    """Load the configured payer, or create a funded test wallet on devnet."""
    if config.has_private_key:
        keypair = load_keypair(config.private_key)
        logger.info("Wallet loaded from environment")
        return keypair

    if not config.is_devnet:
        raise ConfigurationError(f"For {config.network}, you must specify PRIVATE_KEY in .env")

    return create_test_wallet(client)


def resolve_tokens(client: Client, payer: Keypair, config: AppConfig) -> List[TokenInfo]:
    """Token holdings of the payer; mints a test token on devnet when there are none."""
    tokens = get_wallet_tokens(client, payer.pubkey())
    if tokens:
        return tokens

    if not config.is_devnet:
        raise NoTokensError("No tokens found on wallet. Transfer tokens to this wallet first.")

    logger.warning("No tokens found on wallet. Creating test token for devnet...")
    return [create_test_token(client, payer)]


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="dandelion",
        description="Solana SPL token mass distribution to generated addresses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables (read from script.env, then .env):
  NETWORK               devnet, testnet or mainnet-beta (default: devnet)
  RPC_URL               Solana RPC endpoint (default: devnet public RPC)
  PRIVATE_KEY           Payer secret, base58 or JSON byte array
  TOTAL_RECIPIENTS      Default number of recipients (default: 5000)
  TOKENS_PER_RECIPIENT  Default tokens per recipient (default: 0.8)
  RECIPIENTS_PER_TX     Default recipients per transaction (default: 10)
  BATCH_DELAY           Delay between batches in seconds (default: 0.5)
  COMPUTE_UNIT_LIMIT    Compute unit limit per transaction (default: 300000)
  COMPUTE_UNIT_PRICE    Priority fee in micro-lamports per CU (default: 50000)
  LOG_LEVEL             Logging level (default: INFO)
  LOG_DIR               Directory for log files (default: logs)

Examples:
  # Interactive run on devnet
  dandelion

  # Estimate only
  dandelion --recipients 1000 --amount 2 --dry-run

  # Unattended run
  dandelion --yes --token-index 1 --recipients 500 --amount 0.8 --batch-size 10
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--recipients', type=int, help='Number of recipients')
    parser.add_argument('--amount', type=parse_decimal, help='Tokens per recipient')
    parser.add_argument('--batch-size', type=int, help=f'Recipients per transaction (max {MAX_RECIPIENTS_PER_TX})')
    parser.add_argument('--token-index', type=int, help='Token number from the wallet token list (1-based)')
    parser.add_argument('--yes', action='store_true', help='Unattended mode: no prompts, no confirmation')
    parser.add_argument('--dry-run', action='store_true', help='Show the plan and cost estimate without sending')
    parser.add_argument('--env-file', help='Additional env file, loaded before script.env and .env')

    return parser.parse_args(argv)


def run(
    args: argparse.Namespace,
    config: AppConfig,
    reporter: ConsoleReporter,
    input_func: Callable[[str], str] = input,
) -> int:
    """Execute one distribution run. Fatal problems raise AirdropError."""
    print(f"🌐 Network: {config.network}")
    print(f"🔗 RPC: {config.rpc_url[:40]}...")
    print()

    client = Client(config.rpc_url, commitment=Confirmed)
    payer = resolve_payer(client, config)

    balance = get_wallet_balance(client, payer.pubkey())
    reporter.wallet_info(str(payer.pubkey()), balance)

    logger.info("Loading tokens...")
    tokens = resolve_tokens(client, payer, config)
    reporter.banner("🪙 AVAILABLE TOKENS")
    print(format_token_list(tokens))

    if args.yes:
        params = unattended_parameters(args, config, len(tokens))
    else:
        params = prompt_parameters(args, config, len(tokens), input_func)

    token = tokens[params.token_index - 1]

    balance_check = check_sufficient_balance(token, params.total_recipients, params.tokens_per_recipient)
    if not balance_check.sufficient:
        raise InsufficientBalanceError(balance_check.required, balance_check.available, "tokens")

    cost = estimate_cost(params.total_recipients, params.recipients_per_tx, config.fees)
    reporter.plan_summary(str(token.mint), params.total_recipients, params.tokens_per_recipient, cost)

    needed = required_lamports(cost)
    sol_balance = get_wallet_balance(client, payer.pubkey())
    if sol_balance < needed:
        raise InsufficientBalanceError(lamports_to_sol(needed), lamports_to_sol(sol_balance), "SOL")

    if args.dry_run:
        logger.info("DRY RUN: no transactions sent")
        return 0

    if not args.yes and not confirm("🚀 Start distribution?", input_func):
        print("\n👋 Cancelled by user\n")
        return 0

    logger.info("Generating random addresses...")
    recipients = generate_random_addresses(params.total_recipients)
    logger.info(f"Generated {format_number(len(recipients))} addresses")

    plan = AirdropPlan(
        token=token,
        recipients=recipients,
        tokens_per_recipient=params.tokens_per_recipient,
        recipients_per_tx=params.recipients_per_tx,
    )
    outcome = execute_airdrop(client, payer, plan, config, observer=reporter)

    reporter.sample_transactions(outcome.signatures, config.network)
    print("✅ Done!\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    print(BANNER)

    try:
        load_env_files(args.env_file)
        config = load_config()
        setup_logging(config.log_level, config.log_dir)

        for warning in validate_config(config):
            logger.warning(warning)

        return run(args, config, ConsoleReporter())

    except KeyboardInterrupt:
        print("\n\n⚠️  Operation interrupted by user")
        return 1
    except AirdropError as e:
        print(f"\n❌ {e}")
        return 1
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        print(f"\n💥 Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
