"""
solana_client.py - Transaction executor with a single expiry retry

Rule: never resubmit unless we KNOW the prior attempt could not land.

The only failure where that is provable before confirmation is an expired
blockhash rejected at preflight. That case gets exactly one resubmission
with a fresh blockhash and a fresh signature. Everything else is fatal.

Outcomes:
    TxResult                    confirmed / finalized
    SubmissionError             node refused the tx (never landed)
    TransactionFailedError      landed, program returned an error
    ConfirmationTimeoutError    INDETERMINATE - may still land
    TransactionDroppedError     INDETERMINATE - blockhash expired unseen

Usage:
    executor = TransactionExecutor(AsyncClient(rpc_url), context)
    result = await executor.execute(plan)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Union

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus, TransactionErrorFieldless

from pumptrade.config.settings import EngineContext
from pumptrade.errors import (
    ConfirmationTimeoutError,
    RpcError,
    SimulationError,
    SubmissionError,
    SwapInstructionsError,
    TransactionDroppedError,
    TransactionFailedError,
)
from pumptrade.rpc import rpc_call


# =============================================================================
# OUTCOME CLASSIFICATION
# =============================================================================

class TxOutcome(Enum):
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class TxFailureReason(Enum):
    """Specific failure reasons for submission errors."""
    BLOCKHASH_EXPIRED = "blockhash_expired"
    SIMULATION_FAILED = "simulation_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    PROGRAM_ERROR = "program_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class EnvelopeKind(Enum):
    LEGACY = "legacy"
    VERSIONED = "versioned"


_EXPIRY_MARKERS = (
    "blockhash not found",
    "block height exceeded",
    "blockheight exceeded",
)

_COMMITMENT_LEVEL = {"processed": 0, "confirmed": 1, "finalized": 2}


def _confirmation_level(status) -> int:
    if status == TransactionConfirmationStatus.Finalized:
        return 2
    if status == TransactionConfirmationStatus.Confirmed:
        return 1
    if status == TransactionConfirmationStatus.Processed:
        return 0
    return -1


def classify_error(error: Union[BaseException, str]) -> TxFailureReason:
    """
    Map a send error onto a TxFailureReason.

    A structured BlockhashNotFound preflight error is checked first; the
    message is only consulted when the node gives nothing structured.
    """
    if isinstance(error, BaseException) and error.args:
        payload = error.args[0]
        err = getattr(getattr(payload, "data", None), "err", None)
        if err == TransactionErrorFieldless.BlockhashNotFound:
            return TxFailureReason.BLOCKHASH_EXPIRED

    error_lower = str(error).lower()

    if any(marker in error_lower for marker in _EXPIRY_MARKERS):
        return TxFailureReason.BLOCKHASH_EXPIRED
    if "insufficient" in error_lower or "not enough" in error_lower:
        return TxFailureReason.INSUFFICIENT_FUNDS
    if "slippage" in error_lower or "exceeds" in error_lower:
        return TxFailureReason.SLIPPAGE_EXCEEDED
    if "simulation" in error_lower:
        return TxFailureReason.SIMULATION_FAILED
    if "program" in error_lower:
        return TxFailureReason.PROGRAM_ERROR
    if "timeout" in error_lower or "timed out" in error_lower:
        return TxFailureReason.TIMEOUT
    if "connection" in error_lower or "network" in error_lower:
        return TxFailureReason.NETWORK_ERROR

    return TxFailureReason.UNKNOWN


# =============================================================================
# PLAN / RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class FinalityReference:
    """Recent blockhash and the last block height at which it is valid."""
    blockhash: Hash
    last_valid_block_height: int


@dataclass
class ExecutionPlan:
    """
    Everything needed to build the envelope. Built fresh per request.

    signers must include payer; extra signers (e.g. a new mint) follow it.
    """
    instructions: List[Instruction]
    payer: Keypair
    signers: List[Keypair]
    kind: EnvelopeKind = EnvelopeKind.LEGACY
    lookup_tables: List[AddressLookupTableAccount] = field(default_factory=list)
    venue: str = "native"
    label: str = ""

    def __post_init__(self):
        if not self.instructions:
            raise ValueError("execution plan has no instructions")
        if self.payer.pubkey() not in [s.pubkey() for s in self.signers]:
            self.signers = [self.payer, *self.signers]
        if self.lookup_tables and self.kind is not EnvelopeKind.VERSIONED:
            raise ValueError("lookup tables require a versioned envelope")


@dataclass(frozen=True)
class SendOutcome:
    """Result of one submission attempt."""
    signature: Optional[str] = None
    reason: Optional[TxFailureReason] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.signature is not None

    @property
    def expired(self) -> bool:
        return self.reason is TxFailureReason.BLOCKHASH_EXPIRED


@dataclass
class TxResult:
    """Confirmed transaction."""
    outcome: TxOutcome
    signature: str
    attempts: int
    blockhash: str
    slot: Optional[int] = None
    send_time: Optional[datetime] = None
    confirm_time: Optional[datetime] = None


async def fetch_lookup_tables(
    client: AsyncClient,
    table_addresses: Sequence[Pubkey],
) -> List[AddressLookupTableAccount]:
    """Load address lookup tables from chain for v0 message compilation."""
    tables: List[AddressLookupTableAccount] = []
    for key in table_addresses:
        info = await rpc_call("get_account_info(lookup_table)", client.get_account_info(key))
        if info is None:
            raise SwapInstructionsError(f"address lookup table not found: {key}")
        table = AddressLookupTable.deserialize(bytes(info.data))
        tables.append(AddressLookupTableAccount(key, list(table.addresses)))
    return tables


# =============================================================================
# TRANSACTION EXECUTOR
# =============================================================================

class TransactionExecutor:
    """
    Builds, signs, submits and confirms one ExecutionPlan.

    Holds no per-trade state; concurrent executes share only the RPC client.
    """

    def __init__(self, client: AsyncClient, context: EngineContext):
        self.client = client
        self.context = context
        self.commitment = Commitment(context.commitment)

    # =========================================================================
    # ENVELOPE
    # =========================================================================

    async def latest_finality_reference(self) -> FinalityReference:
        value = await rpc_call(
            "get_latest_blockhash",
            self.client.get_latest_blockhash(commitment=self.commitment),
        )
        return FinalityReference(
            blockhash=value.blockhash,
            last_valid_block_height=value.last_valid_block_height,
        )

    def sign(
        self,
        plan: ExecutionPlan,
        ref: FinalityReference,
    ) -> Union[Transaction, VersionedTransaction]:
        """Build and sign the envelope against a specific blockhash."""
        if plan.kind is EnvelopeKind.VERSIONED:
            message = MessageV0.try_compile(
                plan.payer.pubkey(),
                plan.instructions,
                plan.lookup_tables,
                ref.blockhash,
            )
            return VersionedTransaction(message, plan.signers)

        return Transaction.new_signed_with_payer(
            plan.instructions,
            plan.payer.pubkey(),
            plan.signers,
            ref.blockhash,
        )

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit(self, tx: Union[Transaction, VersionedTransaction]) -> SendOutcome:
        """
        Send with preflight enabled. Never raises for node rejections;
        the failure is returned classified.
        """
        opts = TxOpts(
            skip_preflight=False,
            preflight_commitment=self.commitment,
            max_retries=self.context.max_send_retries,
        )
        try:
            resp = await self.client.send_raw_transaction(bytes(tx), opts=opts)
        except Exception as e:
            reason = classify_error(e)
            logger.error(f"TX_SEND | error | reason={reason.value} | {e}")
            return SendOutcome(reason=reason, error_message=str(e))

        signature = str(resp.value) if getattr(resp, "value", None) is not None else None
        if signature is None:
            return SendOutcome(reason=TxFailureReason.UNKNOWN, error_message="no_signature_returned")

        logger.info(f"TX_SENT | sig={signature}")
        return SendOutcome(signature=signature)

    async def execute(self, plan: ExecutionPlan) -> TxResult:
        """
        Sign, submit (one expiry retry), confirm.

        Steps:
        1. Fetch blockhash, sign, send
        2. If preflight says the blockhash expired: refresh, re-sign, send once more
        3. Any other send failure, or a second expiry: SubmissionError
        4. Poll until confirmed against the blockhash actually used
        """
        send_time = datetime.now(timezone.utc)

        ref = await self.latest_finality_reference()
        outcome = await self.submit(self.sign(plan, ref))
        attempts = 1

        if outcome.expired:
            logger.warning(f"TX_EXPIRED | {plan.label} | refreshing blockhash and resubmitting once")
            ref = await self.latest_finality_reference()
            outcome = await self.submit(self.sign(plan, ref))
            attempts = 2

        if not outcome.ok:
            raise SubmissionError(
                f"{plan.label or plan.venue} submission failed after {attempts} attempt(s): "
                f"{outcome.error_message}",
                reason=outcome.reason,
                attempts=attempts,
            )

        return await self.confirm(outcome.signature, ref, attempts=attempts, send_time=send_time)

    # =========================================================================
    # CONFIRMATION
    # =========================================================================

    async def confirm(
        self,
        signature: str,
        ref: FinalityReference,
        attempts: int = 1,
        send_time: Optional[datetime] = None,
    ) -> TxResult:
        """
        Poll signature status until it reaches the context commitment.

        Transient RPC errors while polling are logged and polled through;
        the deadline and the blockhash expiry bound the loop.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.context.confirm_timeout_seconds
        wanted = _COMMITMENT_LEVEL[self.context.commitment]
        sig = Signature.from_string(signature)
        last_error: Optional[str] = None

        while True:
            try:
                statuses = await rpc_call(
                    "get_signature_statuses",
                    self.client.get_signature_statuses([sig]),
                )
                status = statuses[0] if statuses else None

                if status is not None:
                    if status.err is not None:
                        logger.error(f"TX_FAILED | sig={signature} | error={status.err}")
                        raise TransactionFailedError(
                            f"transaction {signature} failed on-chain: {status.err}",
                            signature=signature,
                        )
                    if _confirmation_level(status.confirmation_status) >= wanted:
                        outcome = (
                            TxOutcome.FINALIZED
                            if status.confirmation_status == TransactionConfirmationStatus.Finalized
                            else TxOutcome.CONFIRMED
                        )
                        logger.info(f"TX_{outcome.name} | sig={signature} | slot={status.slot}")
                        return TxResult(
                            outcome=outcome,
                            signature=signature,
                            attempts=attempts,
                            blockhash=str(ref.blockhash),
                            slot=status.slot,
                            send_time=send_time,
                            confirm_time=datetime.now(timezone.utc),
                        )

                block_height = await rpc_call(
                    "get_block_height",
                    self.client.get_block_height(commitment=self.commitment),
                )
                if block_height > ref.last_valid_block_height:
                    logger.warning(
                        f"TX_DROPPED | sig={signature} | height={block_height} > "
                        f"last_valid={ref.last_valid_block_height}"
                    )
                    raise TransactionDroppedError(
                        f"blockhash expired before {signature} was confirmed",
                        signature=signature,
                    )
            except RpcError as e:
                last_error = str(e)
                logger.warning(f"TX_CONFIRM | rpc_error | sig={signature} | {e}")

            if loop.time() >= deadline:
                logger.warning(f"TX_TIMEOUT | sig={signature} | timeout={self.context.confirm_timeout_seconds}s")
                detail = f" (last rpc error: {last_error})" if last_error else ""
                raise ConfirmationTimeoutError(
                    f"confirmation timed out for {signature}{detail}",
                    signature=signature,
                )

            await asyncio.sleep(self.context.confirm_poll_seconds)

    # =========================================================================
    # SIMULATION / BALANCE
    # =========================================================================

    async def simulate(self, plan: ExecutionPlan) -> List[str]:
        """Sign and simulate with signature verification. Returns program logs."""
        ref = await self.latest_finality_reference()
        tx = self.sign(plan, ref)
        value = await rpc_call(
            "simulate_transaction",
            self.client.simulate_transaction(tx, sig_verify=True, commitment=self.commitment),
        )
        logs = list(value.logs or [])
        if value.err is not None:
            logger.error(f"TX_SIMULATE | failed | {value.err}")
            raise SimulationError(f"Simulation failed: {value.err}", logs=logs)
        logger.info(f"TX_SIMULATE | ok | logs={len(logs)}")
        return logs

    async def get_balance(self, pubkey: Pubkey) -> int:
        """Lamport balance."""
        return await rpc_call("get_balance", self.client.get_balance(pubkey, commitment=self.commitment))
