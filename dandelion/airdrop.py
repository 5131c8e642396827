"""
Batched SPL token distribution.

Recipients are split into fixed-size batches. Each batch becomes one
transaction: compute budget instructions followed by an idempotent
associated token account creation and a transfer per recipient. Batches are
sent one after another; a failed batch is recorded and the run continues.
"""

import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, List, Optional, Sequence, Union

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.instructions import (
    TransferParams,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer,
)

from dandelion.config import AppConfig, FeeSchedule
from dandelion.tokens import TokenInfo
from dandelion.utils import LAMPORTS_PER_SOL, chunk
from dandelion.wallet import get_wallet_balance

logger = logging.getLogger(__name__)

DEFAULT_COMPUTE_UNIT_LIMIT = 300_000
DEFAULT_COMPUTE_UNIT_PRICE = 50_000
SOL_BUFFER = Decimal("1.1")


def to_base_units(amount: Union[Decimal, float, str], decimals: int) -> int:
    """Convert a display amount to integer base units, rounding down."""
    scaled = Decimal(str(amount)).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class AirdropPlan:
    """What to distribute, to whom, and how many recipients per transaction."""
    token: TokenInfo
    recipients: Sequence[Pubkey]
    tokens_per_recipient: Decimal
    recipients_per_tx: int

    @property
    def amount_per_recipient(self) -> int:
        return to_base_units(self.tokens_per_recipient, self.token.decimals)

    @property
    def batches(self) -> List[List[Pubkey]]:
        return chunk(self.recipients, self.recipients_per_tx)


@dataclass(frozen=True)
class BatchError:
    batch: int  # 1-based
    error: str


@dataclass(frozen=True)
class BatchEvent:
    """Result of one batch attempt, emitted to the observer."""
    index: int
    total: int
    size: int
    signature: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class AirdropOutcome:
    """Aggregate result of a distribution run."""
    successful: int = 0
    failed: int = 0
    total_spent: Optional[int] = 0  # lamports, None when the closing balance could not be read
    signatures: List[str] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)


@dataclass(frozen=True)
class CostEstimate:
    """Expected SOL cost of a distribution."""
    account_rent: Decimal
    fees: Decimal
    total: Decimal
    transactions: int


class AirdropObserver:
    """Receives progress events from the submission loop. Methods are no-ops by default."""

    def on_start(self, plan: AirdropPlan, batch_count: int) -> None:
        pass

    def on_batch(self, event: BatchEvent) -> None:
        pass

    def on_finish(self, outcome: AirdropOutcome) -> None:
        pass


def estimate_cost(total_recipients: int, recipients_per_tx: int, fees: FeeSchedule = FeeSchedule()) -> CostEstimate:
    """Estimate account rent plus transaction fees, in SOL."""
    transactions = -(-total_recipients // recipients_per_tx)
    account_rent = total_recipients * fees.rent_per_account
    tx_fees = transactions * (fees.base_fee + fees.priority_fee)
    return CostEstimate(
        account_rent=account_rent,
        fees=tx_fees,
        total=account_rent + tx_fees,
        transactions=transactions,
    )


def required_lamports(cost: CostEstimate) -> int:
    """SOL needed before starting: the estimate plus a 10% buffer, in lamports."""
    return int(cost.total * LAMPORTS_PER_SOL * SOL_BUFFER)


def build_batch_instructions(
    payer: Pubkey,
    token: TokenInfo,
    recipients: Sequence[Pubkey],
    amount: int,
    compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
    compute_unit_price: int = DEFAULT_COMPUTE_UNIT_PRICE,
) -> List[Instruction]:
    """Build the instructions of one batch transaction. No network access."""
    instructions = [
        set_compute_unit_limit(compute_unit_limit),
        set_compute_unit_price(compute_unit_price),
    ]

    for recipient in recipients:
        recipient_ata = get_associated_token_address(recipient, token.mint, token.program_id)

        # No-op when the account already exists
        instructions.append(create_idempotent_associated_token_account(
            payer=payer,
            owner=recipient,
            mint=token.mint,
            token_program_id=token.program_id,
        ))

        instructions.append(transfer(TransferParams(
            program_id=token.program_id,
            source=token.token_account,
            dest=recipient_ata,
            owner=payer,
            amount=amount,
        )))

    return instructions


def send_batch_transaction(client: Client, payer: Keypair, instructions: Sequence[Instruction]) -> str:
    """Sign and send one transaction, wait for confirmation and return its signature."""
    blockhash = client.get_latest_blockhash(Confirmed).value.blockhash
    message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
    transaction = Transaction([payer], message, blockhash)

    result = client.send_transaction(
        transaction,
        opts=TxOpts(skip_confirmation=False, preflight_commitment=Confirmed),
    )
    return str(result.value)


class AirdropExecutor:
    """Runs the batch submission loop for an AirdropPlan."""

    def __init__(
        self,
        client: Client,
        payer: Keypair,
        config: AppConfig,
        observer: Optional[AirdropObserver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.payer = payer
        self.config = config
        self.observer = observer or AirdropObserver()
        self.sleep = sleep

    def execute(self, plan: AirdropPlan) -> AirdropOutcome:
        """Send every batch in order. Batch failures are recorded, never raised."""
        batches = plan.batches
        amount = plan.amount_per_recipient
        outcome = AirdropOutcome()

        logger.info(
            f"Starting distribution of {plan.token.mint}: {len(plan.recipients):,} recipients, "
            f"{plan.tokens_per_recipient} tokens ({amount} base units) each, {len(batches)} batches"
        )

        start_balance = get_wallet_balance(self.client, self.payer.pubkey())
        self.observer.on_start(plan, len(batches))

        for index, batch in enumerate(batches, start=1):
            event = self._process_batch(index, len(batches), batch, plan.token, amount, outcome)
            self.observer.on_batch(event)

            if index < len(batches):
                self.sleep(self.config.batch_delay)

        try:
            end_balance = get_wallet_balance(self.client, self.payer.pubkey())
        except Exception as e:
            logger.warning(f"Could not read closing balance, SOL spent is unknown: {e}")
            outcome.total_spent = None
        else:
            outcome.total_spent = start_balance - end_balance

        logger.info(
            f"Distribution finished: {outcome.successful:,} succeeded, {outcome.failed:,} failed, "
            f"{len(outcome.signatures)} transactions, {outcome.total_spent} lamports spent"
        )
        self.observer.on_finish(outcome)
        return outcome

    def _process_batch(
        self,
        index: int,
        total: int,
        batch: List[Pubkey],
        token: TokenInfo,
        amount: int,
        outcome: AirdropOutcome,
    ) -> BatchEvent:
        logger.debug(f"Processing batch {index}/{total} ({len(batch)} recipients)")

        try:
            instructions = build_batch_instructions(
                self.payer.pubkey(),
                token,
                batch,
                amount,
                compute_unit_limit=self.config.compute_unit_limit,
                compute_unit_price=self.config.compute_unit_price,
            )
            signature = send_batch_transaction(self.client, self.payer, instructions)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Batch {index}/{total} failed: {error}")
            outcome.failed += len(batch)
            outcome.errors.append(BatchError(batch=index, error=error))
            return BatchEvent(index=index, total=total, size=len(batch), error=error)

        logger.debug(f"Batch {index}/{total} confirmed: {signature}")
        outcome.successful += len(batch)
        outcome.signatures.append(signature)
        return BatchEvent(index=index, total=total, size=len(batch), signature=signature)


def execute_airdrop(
    client: Client,
    payer: Keypair,
    plan: AirdropPlan,
    config: AppConfig,
    observer: Optional[AirdropObserver] = None,
) -> AirdropOutcome:
    """Run a distribution with the default pacing."""
    return AirdropExecutor(client, payer, config, observer).execute(plan)
