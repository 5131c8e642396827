"""Console rendering of airdrop progress and results."""

import sys
from typing import List, Optional, TextIO

from dandelion.airdrop import AirdropObserver, AirdropOutcome, AirdropPlan, BatchEvent, CostEstimate
from dandelion.utils import explorer_url, format_number, format_sol, progress_bar

RULE = "━" * 45
MAX_ERRORS_SHOWN = 5
MAX_ERROR_LENGTH = 100
SAMPLE_SIGNATURES = 3


class ConsoleReporter(AirdropObserver):
    """Renders loop events to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def _print(self, text: str = "") -> None:
        self.stream.write(text + "\n")

    def banner(self, title: str) -> None:
        self._print(RULE)
        self._print(title)
        self._print(RULE)

    def wallet_info(self, address: str, lamports: int) -> None:
        self.banner("💼 WALLET")
        self._print(f"   Address: {address}")
        self._print(f"   Balance: {format_sol(lamports)} SOL")
        self._print(RULE)
        self._print()

    def on_start(self, plan: AirdropPlan, batch_count: int) -> None:
        self._print()
        self.banner("🚀 STARTING DISTRIBUTION")
        self._print(f"   Token: {plan.token.mint}")
        self._print(f"   Recipients: {format_number(len(plan.recipients))}")
        self._print(f"   Tokens per address: {plan.tokens_per_recipient}")
        self._print(f"   Batches: {batch_count}")
        self._print(RULE)
        self._print()

    def on_batch(self, event: BatchEvent) -> None:
        line = f"\r   {progress_bar(event.index, event.total)}"
        if not event.succeeded:
            line += f" ⚠️ Batch {event.index} failed"
        self.stream.write(line)
        self.stream.flush()

    def on_finish(self, outcome: AirdropOutcome) -> None:
        self._print()
        self._print()
        self.banner("📊 RESULTS")
        self._print(f"   ✅ Successful: {format_number(outcome.successful)} addresses")
        self._print(f"   ❌ Failed: {format_number(outcome.failed)} addresses")
        if outcome.total_spent is None:
            self._print("   💰 Spent: unknown")
        else:
            self._print(f"   💰 Spent: {format_sol(outcome.total_spent)} SOL")
        self._print(f"   📝 Transactions: {len(outcome.signatures)}")
        self._print(RULE)
        self._print()

        if outcome.errors:
            for line in error_excerpt(outcome):
                self._print(line)
            self._print()

    def plan_summary(
        self,
        mint: str,
        total_recipients: int,
        tokens_per_recipient,
        cost: CostEstimate,
    ) -> None:
        self._print()
        self.banner("📋 DISTRIBUTION PLAN")
        self._print(f"   Token: {mint[:20]}...")
        self._print(f"   Recipients: {format_number(total_recipients)}")
        self._print(f"   Tokens per address: {tokens_per_recipient}")
        self._print(f"   Total tokens: {format_number(total_recipients * tokens_per_recipient)}")
        self._print(f"   Transactions: {cost.transactions}")
        self._print()
        self._print("   💰 COST ESTIMATE:")
        self._print(f"      ATA Rent: ~{cost.account_rent:.4f} SOL")
        self._print(f"      Fees:     ~{cost.fees:.6f} SOL")
        self._print(f"      TOTAL:    ~{cost.total:.4f} SOL")
        self._print(RULE)
        self._print()

    def sample_transactions(self, signatures: List[str], network: str) -> None:
        if not signatures:
            return
        self._print("📝 Sample transactions:")
        for i, signature in enumerate(signatures[:SAMPLE_SIGNATURES], start=1):
            self._print(f"   {i}. {explorer_url(signature, network)}")
        self._print()


def error_excerpt(outcome: AirdropOutcome) -> List[str]:
    """First few batch errors, truncated, plus a count of the rest."""
    lines = ["⚠️  Errors:"]
    for err in outcome.errors[:MAX_ERRORS_SHOWN]:
        lines.append(f"   Batch {err.batch}: {err.error[:MAX_ERROR_LENGTH]}")
    remaining = len(outcome.errors) - MAX_ERRORS_SHOWN
    if remaining > 0:
        lines.append(f"   ... and {remaining} more errors")
    return lines
