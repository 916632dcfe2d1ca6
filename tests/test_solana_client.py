from dataclasses import replace
from types import SimpleNamespace

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionErrorFieldless

from fakes import FakeRpcClient, confirmed_status
from pumptrade.engines.execution.solana_client import (
    EnvelopeKind,
    ExecutionPlan,
    TransactionExecutor,
    TxFailureReason,
    TxOutcome,
    classify_error,
)
from pumptrade.errors import (
    ConfirmationError,
    ConfirmationTimeoutError,
    SimulationError,
    SubmissionError,
    TransactionDroppedError,
    TransactionFailedError,
)

EXPIRED = RuntimeError("Transaction simulation failed: Blockhash not found")


def _plan(payer: Keypair) -> ExecutionPlan:
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1_000))
    return ExecutionPlan(instructions=[ix], payer=payer, signers=[payer], label="test transfer")


# =============================================================================
# CLASSIFICATION
# =============================================================================

def test_structured_blockhash_error_classified_as_expired():
    payload = SimpleNamespace(data=SimpleNamespace(err=TransactionErrorFieldless.BlockhashNotFound))
    assert classify_error(Exception(payload)) is TxFailureReason.BLOCKHASH_EXPIRED


@pytest.mark.parametrize(
    "message,reason",
    [
        ("Blockhash not found", TxFailureReason.BLOCKHASH_EXPIRED),
        ("block height exceeded", TxFailureReason.BLOCKHASH_EXPIRED),
        ("Attempt to debit an account but found no record of a prior credit: insufficient lamports", TxFailureReason.INSUFFICIENT_FUNDS),
        ("custom program error: 0x1772 slippage", TxFailureReason.SLIPPAGE_EXCEEDED),
        ("Transaction simulation failed", TxFailureReason.SIMULATION_FAILED),
        ("connection refused", TxFailureReason.NETWORK_ERROR),
        ("weird", TxFailureReason.UNKNOWN),
    ],
)
def test_message_fallback_classification(message, reason):
    assert classify_error(RuntimeError(message)) is reason


def test_lookup_tables_need_versioned_envelope():
    payer = Keypair()
    ix = _plan(payer).instructions[0]
    with pytest.raises(ValueError):
        ExecutionPlan(instructions=[ix], payer=payer, signers=[payer], lookup_tables=[object()])


def test_payer_is_always_a_signer():
    payer = Keypair()
    plan = ExecutionPlan(instructions=_plan(payer).instructions, payer=payer, signers=[])
    assert plan.signers == [payer]


# =============================================================================
# EXECUTE
# =============================================================================

@pytest.mark.anyio
async def test_execute_confirms_first_attempt(context):
    rpc = FakeRpcClient()
    rpc.statuses = [None, confirmed_status(slot=77)]
    executor = TransactionExecutor(rpc, context)

    result = await executor.execute(_plan(Keypair()))

    assert result.outcome is TxOutcome.CONFIRMED
    assert result.attempts == 1
    assert result.slot == 77
    assert len(rpc.sent) == 1
    assert rpc.status_polls == 2


@pytest.mark.anyio
async def test_expired_blockhash_resubmits_once_with_fresh_blockhash(context):
    rpc = FakeRpcClient()
    rpc.send_outcomes = [EXPIRED, None]
    rpc.statuses = [confirmed_status()]
    executor = TransactionExecutor(rpc, context)

    result = await executor.execute(_plan(Keypair()))

    assert result.attempts == 2
    assert len(rpc.sent) == 2
    assert len(rpc.blockhashes) == 2
    assert rpc.blockhashes[0] != rpc.blockhashes[1]
    assert result.blockhash == str(rpc.blockhashes[1])
    first, second = (Transaction.from_bytes(raw) for raw in rpc.sent)
    assert first.message.recent_blockhash == rpc.blockhashes[0]
    assert second.message.recent_blockhash == rpc.blockhashes[1]
    assert first.signatures != second.signatures


@pytest.mark.anyio
async def test_second_expiry_is_fatal(context):
    rpc = FakeRpcClient()
    rpc.send_outcomes = [EXPIRED, EXPIRED]
    executor = TransactionExecutor(rpc, context)

    with pytest.raises(SubmissionError) as exc:
        await executor.execute(_plan(Keypair()))

    assert exc.value.attempts == 2
    assert exc.value.reason is TxFailureReason.BLOCKHASH_EXPIRED
    assert len(rpc.sent) == 2
    assert rpc.status_polls == 0


@pytest.mark.anyio
async def test_other_send_failure_is_not_retried(context):
    rpc = FakeRpcClient()
    rpc.send_outcomes = [RuntimeError("Transaction simulation failed: insufficient funds for rent")]
    executor = TransactionExecutor(rpc, context)

    with pytest.raises(SubmissionError) as exc:
        await executor.execute(_plan(Keypair()))

    assert exc.value.attempts == 1
    assert exc.value.reason is TxFailureReason.INSUFFICIENT_FUNDS
    assert len(rpc.sent) == 1


@pytest.mark.anyio
async def test_landed_with_error(context):
    rpc = FakeRpcClient()
    rpc.statuses = [confirmed_status(err="InstructionError(2, Custom(6002))")]
    executor = TransactionExecutor(rpc, context)

    with pytest.raises(TransactionFailedError) as exc:
        await executor.execute(_plan(Keypair()))
    assert exc.value.signature


@pytest.mark.anyio
async def test_block_height_past_expiry_is_dropped(context):
    rpc = FakeRpcClient()
    rpc.block_height = rpc.last_valid_block_height + 1
    executor = TransactionExecutor(rpc, context)

    with pytest.raises(TransactionDroppedError) as exc:
        await executor.execute(_plan(Keypair()))
    assert isinstance(exc.value, ConfirmationError)
    assert exc.value.signature


@pytest.mark.anyio
async def test_confirmation_timeout_is_indeterminate(context):
    rpc = FakeRpcClient()
    executor = TransactionExecutor(rpc, replace(context, confirm_timeout_seconds=0.0))

    with pytest.raises(ConfirmationTimeoutError) as exc:
        await executor.execute(_plan(Keypair()))
    assert isinstance(exc.value, ConfirmationError)
    assert len(rpc.sent) == 1


# =============================================================================
# ENVELOPES / SIMULATION
# =============================================================================

@pytest.mark.anyio
async def test_versioned_envelope_uses_reference_blockhash(context):
    rpc = FakeRpcClient()
    executor = TransactionExecutor(rpc, context)
    payer = Keypair()
    ix = _plan(payer).instructions[0]
    plan = ExecutionPlan(instructions=[ix], payer=payer, signers=[payer], kind=EnvelopeKind.VERSIONED)

    ref = await executor.latest_finality_reference()
    tx = executor.sign(plan, ref)
    assert len(tx.signatures) == 1
    assert tx.message.recent_blockhash == ref.blockhash


@pytest.mark.anyio
async def test_simulate_returns_logs(context):
    rpc = FakeRpcClient()
    executor = TransactionExecutor(rpc, context)
    assert await executor.simulate(_plan(Keypair())) == ["Program log: ok"]
    assert rpc.sent == []


@pytest.mark.anyio
async def test_simulate_failure_carries_logs(context):
    rpc = FakeRpcClient()
    rpc.simulation = SimpleNamespace(err="InstructionError(0, Custom(1))", logs=["Program log: boom"])
    executor = TransactionExecutor(rpc, context)

    with pytest.raises(SimulationError) as exc:
        await executor.simulate(_plan(Keypair()))
    assert exc.value.logs == ["Program log: boom"]
