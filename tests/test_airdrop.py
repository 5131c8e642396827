"""Tests for the batch builder, submission loop and cost estimator."""

import itertools
from decimal import Decimal

import pytest
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.keypair import Keypair
from spl.token.constants import TOKEN_2022_PROGRAM_ID
from spl.token.instructions import (
    TransferParams,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer,
)

from dandelion.airdrop import (
    AirdropExecutor,
    AirdropObserver,
    AirdropPlan,
    BatchError,
    build_batch_instructions,
    estimate_cost,
    required_lamports,
    send_batch_transaction,
    to_base_units,
)
from dandelion.config import AppConfig, FeeSchedule
from dandelion.tokens import TokenInfo
from dandelion.utils import generate_random_addresses


class RecordingObserver(AirdropObserver):
    def __init__(self):
        self.calls = []

    def on_start(self, plan, batch_count):
        self.calls.append(("start", batch_count))

    def on_batch(self, event):
        self.calls.append(("batch", event))

    def on_finish(self, outcome):
        self.calls.append(("finish", outcome))


def make_plan(token, count, per_tx=10, amount="0.8"):
    return AirdropPlan(
        token=token,
        recipients=generate_random_addresses(count),
        tokens_per_recipient=Decimal(amount),
        recipients_per_tx=per_tx,
    )


class TestAmountConversion:
    def test_six_decimals(self):
        assert to_base_units(Decimal("0.8"), 6) == 800_000

    def test_nine_decimals(self):
        assert to_base_units(Decimal("0.8"), 9) == 800_000_000

    def test_float_input_is_exact(self):
        assert to_base_units(0.8, 6) == 800_000
        assert to_base_units(0.29, 2) == 29

    def test_rounds_down(self):
        assert to_base_units(Decimal("1.2345678"), 6) == 1_234_567
        assert to_base_units(Decimal("0.0000009"), 6) == 0

    def test_zero_decimals(self):
        assert to_base_units(Decimal("42.9"), 0) == 42

    def test_plan_amount_uses_token_decimals(self, token):
        plan = make_plan(token, 3)
        assert plan.amount_per_recipient == 800_000


class TestBuildBatchInstructions:
    def test_instruction_order(self, payer, token):
        recipients = generate_random_addresses(3)
        ixs = build_batch_instructions(payer.pubkey(), token, recipients, 800_000)

        assert len(ixs) == 2 + 2 * len(recipients)
        assert ixs[0] == set_compute_unit_limit(300_000)
        assert ixs[1] == set_compute_unit_price(50_000)

        for i, recipient in enumerate(recipients):
            ata = get_associated_token_address(recipient, token.mint, token.program_id)
            create_ix = ixs[2 + 2 * i]
            transfer_ix = ixs[3 + 2 * i]

            assert create_ix == create_idempotent_associated_token_account(
                payer=payer.pubkey(),
                owner=recipient,
                mint=token.mint,
                token_program_id=token.program_id,
            )
            assert transfer_ix == transfer(TransferParams(
                program_id=token.program_id,
                source=token.token_account,
                dest=ata,
                owner=payer.pubkey(),
                amount=800_000,
            ))

    def test_custom_compute_budget(self, payer, token):
        ixs = build_batch_instructions(
            payer.pubkey(), token, generate_random_addresses(1), 1,
            compute_unit_limit=123_456, compute_unit_price=7,
        )
        assert ixs[0] == set_compute_unit_limit(123_456)
        assert ixs[1] == set_compute_unit_price(7)

    def test_token_2022_program(self, payer):
        token = TokenInfo(
            mint=Keypair().pubkey(),
            token_account=Keypair().pubkey(),
            program_id=TOKEN_2022_PROGRAM_ID,
            decimals=9,
            balance=10 ** 12,
        )
        recipient = Keypair().pubkey()
        ixs = build_batch_instructions(payer.pubkey(), token, [recipient], 5)

        ata = get_associated_token_address(recipient, token.mint, TOKEN_2022_PROGRAM_ID)
        assert ixs[2].accounts[1].pubkey == ata
        assert ixs[3].program_id == TOKEN_2022_PROGRAM_ID
        assert ixs[3].accounts[1].pubkey == ata

    def test_deterministic(self, payer, token):
        recipients = generate_random_addresses(4)
        first = build_batch_instructions(payer.pubkey(), token, recipients, 10)
        second = build_batch_instructions(payer.pubkey(), token, recipients, 10)
        assert first == second


class TestSendBatchTransaction:
    def test_returns_signature(self, payer, token, client_factory):
        client = client_factory(send_results=["sig-1"])
        ixs = build_batch_instructions(payer.pubkey(), token, generate_random_addresses(2), 1)

        assert send_batch_transaction(client, payer, ixs) == "sig-1"

        transaction = client.send_transaction.call_args.args[0]
        assert transaction.message.account_keys[0] == payer.pubkey()
        assert len(transaction.signatures) == 1
        opts = client.send_transaction.call_args.kwargs["opts"]
        assert opts.skip_confirmation is False

    def test_propagates_errors(self, payer, token, client_factory):
        client = client_factory(send_results=[RuntimeError("Transaction simulation failed")])
        ixs = build_batch_instructions(payer.pubkey(), token, generate_random_addresses(1), 1)

        with pytest.raises(RuntimeError, match="simulation failed"):
            send_batch_transaction(client, payer, ixs)
        assert client.send_transaction.call_count == 1


class TestAirdropExecutor:
    def test_all_batches_succeed(self, payer, token, config, client_factory):
        client = client_factory(send_results=["sig-1", "sig-2", "sig-3"])
        sleeps = []
        plan = make_plan(token, 23)

        outcome = AirdropExecutor(client, payer, config, sleep=sleeps.append).execute(plan)

        assert [len(b) for b in plan.batches] == [10, 10, 3]
        assert outcome.successful == 23
        assert outcome.failed == 0
        assert outcome.signatures == ["sig-1", "sig-2", "sig-3"]
        assert outcome.errors == []
        assert outcome.total_spent == 10_000_000
        assert sleeps == [0.5, 0.5]

    def test_middle_batch_failure_is_isolated(self, payer, token, config, client_factory):
        client = client_factory(send_results=["sig-1", RuntimeError("Blockhash not found"), "sig-3"])
        sleeps = []
        plan = make_plan(token, 23)

        outcome = AirdropExecutor(client, payer, config, sleep=sleeps.append).execute(plan)

        assert outcome.successful == 13
        assert outcome.failed == 10
        assert outcome.errors == [BatchError(batch=2, error="Blockhash not found")]
        assert outcome.signatures == ["sig-1", "sig-3"]
        assert client.send_transaction.call_count == 3
        assert sleeps == [0.5, 0.5]

    def test_error_without_message_uses_type_name(self, payer, token, config, client_factory):
        client = client_factory(send_results=[TimeoutError()])
        outcome = AirdropExecutor(client, payer, config, sleep=lambda s: None).execute(make_plan(token, 4))

        assert outcome.errors == [BatchError(batch=1, error="TimeoutError")]
        assert outcome.failed == 4

    def test_blockhash_failure_is_recorded(self, payer, token, config, client_factory):
        client = client_factory(send_results=["sig-2"])
        client.get_latest_blockhash.side_effect = [ConnectionError("RPC unreachable"), client.get_latest_blockhash.return_value]

        outcome = AirdropExecutor(client, payer, config, sleep=lambda s: None).execute(make_plan(token, 12))

        assert outcome.errors == [BatchError(batch=1, error="RPC unreachable")]
        assert outcome.successful == 2
        assert outcome.failed == 10
        assert outcome.signatures == ["sig-2"]

    @pytest.mark.parametrize("pattern", list(itertools.product([True, False], repeat=3)))
    def test_accounting_closure(self, payer, token, config, client_factory, pattern):
        results = [f"sig-{i}" if ok else RuntimeError(f"fail {i}") for i, ok in enumerate(pattern, start=1)]
        client = client_factory(send_results=results)
        plan = make_plan(token, 25)

        outcome = AirdropExecutor(client, payer, config, sleep=lambda s: None).execute(plan)

        assert outcome.successful + outcome.failed == 25
        assert len(outcome.signatures) == sum(pattern)
        failed_batches = [i for i, ok in enumerate(pattern, start=1) if not ok]
        assert [e.batch for e in outcome.errors] == failed_batches

    def test_empty_recipient_list(self, payer, token, config, client_factory):
        client = client_factory(send_results=[], balances=(100, 100))
        sleeps = []

        outcome = AirdropExecutor(client, payer, config, sleep=sleeps.append).execute(make_plan(token, 0))

        assert outcome.successful == 0
        assert outcome.failed == 0
        assert outcome.total_spent == 0
        assert sleeps == []
        client.send_transaction.assert_not_called()

    def test_unreadable_closing_balance_keeps_results(self, payer, token, config, client_factory):
        client = client_factory(
            send_results=["sig-1", "sig-2"],
            balances=(2_000_000_000, ConnectionError("rpc down")),
        )
        observer = RecordingObserver()

        outcome = AirdropExecutor(client, payer, config, observer, sleep=lambda s: None).execute(
            make_plan(token, 15)
        )

        assert outcome.total_spent is None
        assert outcome.successful == 15
        assert outcome.signatures == ["sig-1", "sig-2"]
        assert observer.calls[-1] == ("finish", outcome)

    def test_observer_receives_events(self, payer, token, config, client_factory):
        client = client_factory(send_results=["sig-1", RuntimeError("boom")])
        observer = RecordingObserver()

        outcome = AirdropExecutor(client, payer, config, observer=observer, sleep=lambda s: None).execute(
            make_plan(token, 15)
        )

        kinds = [c[0] for c in observer.calls]
        assert kinds == ["start", "batch", "batch", "finish"]
        assert observer.calls[0][1] == 2

        first, second = observer.calls[1][1], observer.calls[2][1]
        assert (first.index, first.total, first.size, first.signature) == (1, 2, 10, "sig-1")
        assert first.succeeded
        assert (second.index, second.size, second.error) == (2, 5, "boom")
        assert not second.succeeded
        assert observer.calls[3][1] is outcome

    def test_uses_configured_compute_budget(self, payer, token, client_factory):
        client = client_factory(send_results=["sig-1"])
        config = AppConfig(compute_unit_limit=200_000, compute_unit_price=1_000)

        AirdropExecutor(client, payer, config, sleep=lambda s: None).execute(make_plan(token, 2))

        transaction = client.send_transaction.call_args.args[0]
        instructions = transaction.message.instructions
        assert len(instructions) == 6
        assert bytes(instructions[0].data) == bytes(set_compute_unit_limit(200_000).data)
        assert bytes(instructions[1].data) == bytes(set_compute_unit_price(1_000).data)


class TestEstimateCost:
    def test_reference_scenario(self):
        cost = estimate_cost(5000, 10)

        assert cost.transactions == 500
        assert cost.account_rent == Decimal("5000") * Decimal("0.00203928")
        assert cost.fees == Decimal("500") * Decimal("0.000055")
        assert cost.total == Decimal("10.2239")

    def test_partial_last_batch_counts_as_transaction(self):
        assert estimate_cost(23, 10).transactions == 3

    def test_zero_recipients(self):
        cost = estimate_cost(0, 10)
        assert cost.total == 0
        assert cost.transactions == 0

    def test_custom_fee_schedule(self):
        fees = FeeSchedule(rent_per_account=Decimal("0.002"), base_fee=Decimal("0"), priority_fee=Decimal("0.001"))
        cost = estimate_cost(10, 5, fees)
        assert cost.total == Decimal("0.022")

    def test_non_decreasing_in_recipients(self):
        for per_tx in (1, 3, 10):
            totals = [estimate_cost(n, per_tx).total for n in range(0, 60)]
            assert totals == sorted(totals)

    def test_non_increasing_in_batch_size(self):
        for recipients in (1, 17, 100):
            totals = [estimate_cost(recipients, s).total for s in range(1, 11)]
            assert totals == sorted(totals, reverse=True)

    def test_required_lamports_adds_buffer(self):
        cost = estimate_cost(5000, 10)
        assert required_lamports(cost) == 11_246_290_000
