"""
trade_engine.py - Public façade over router + executor

Core Principles:
1. FAIL CLOSED - every error is raised; nothing returns None on failure
   except the best-effort USD price annotation.
2. FRESH STATE - each request re-reads the curve, balances and accounts.
3. ONE RETRY - only the executor's single expired-blockhash resubmission.
4. NO GLOBALS - the engine holds the RPC and HTTP clients, nothing else.

Usage:
    context = load_context_or_exit()
    engine = TradeEngine(context)
    result = await engine.buy(wallet, mint, Decimal("0.1"))
    await engine.close()
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Union

import httpx
from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TokenAccountOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams as SystemTransferParams
from solders.system_program import transfer as system_transfer
from spl.token.instructions import TransferCheckedParams, create_associated_token_account, transfer_checked

from pumptrade.config.programs import (
    INITIAL_VIRTUAL_SOL_RESERVES,
    INITIAL_VIRTUAL_TOKEN_RESERVES,
    LAMPORTS_PER_SOL,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_ACCOUNT_SIZE,
    TOKEN_PROGRAM_ID,
)
from pumptrade.config.settings import EngineContext
from pumptrade.curve import addresses
from pumptrade.curve.encoding import validate_metadata
from pumptrade.curve.instructions import build_buy_instruction, build_create_instruction
from pumptrade.curve.pricing import quote_buy
from pumptrade.curve.state import read_token_decimals, token_program_for_mint
from pumptrade.domain.models import Side, TradeRequest, TradeResult
from pumptrade.engines.execution.adapters import JupiterAdapter
from pumptrade.engines.execution.router import (
    VenueRouter,
    compute_budget_instructions,
    sol_to_lamports,
    ui_to_raw,
)
from pumptrade.engines.execution.solana_client import (
    EnvelopeKind,
    ExecutionPlan,
    TransactionExecutor,
    TxResult,
)
from pumptrade.errors import InputValidationError, InsufficientBalanceError, PreconditionError
from pumptrade.rpc import rpc_call

DEXSCREENER_TOKENS_URL = "https://api.dexscreener.com/latest/dex/tokens"


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class DeployResult:
    mint: str
    signature: Optional[str] = None
    simulation_logs: Optional[List[str]] = None
    initial_buy_tokens: int = 0


@dataclass(frozen=True)
class TransferResult:
    signature: str
    recipient: str
    amount: int        # lamports or token base units
    attempts: int


@dataclass(frozen=True)
class PreflightReport:
    rpc_ok: bool
    balance_lamports: int
    min_lamports: int

    @property
    def ok(self) -> bool:
        return self.rpc_ok and self.balance_lamports >= self.min_lamports


@dataclass(frozen=True)
class TokenHolding:
    mint: str
    token_account: str
    amount: int
    decimals: int
    usd_price: Optional[float] = None

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount) / (Decimal(10) ** self.decimals)

    @property
    def usd_value(self) -> Optional[float]:
        if self.usd_price is None:
            return None
        return float(self.ui_amount) * self.usd_price


def _pubkey(value: Union[str, Pubkey], what: str) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(value)
    except (TypeError, ValueError) as e:
        raise InputValidationError(f"invalid {what} address: {value!r}") from e


# =============================================================================
# TRADE ENGINE
# =============================================================================

class TradeEngine:
    """
    Buy / sell / deploy / transfer against pump.fun and Jupiter.

    The payer keypair is passed per call; the engine never stores key material.
    """

    def __init__(
        self,
        context: EngineContext,
        client: Optional[AsyncClient] = None,
        aggregator: Optional[JupiterAdapter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.context = context
        self.commitment = Commitment(context.commitment)
        self.client = client or AsyncClient(
            context.rpc_url,
            commitment=self.commitment,
            timeout=context.http_timeout_seconds,
        )
        self.aggregator = aggregator or JupiterAdapter(
            context.aggregator_url, http_timeout=context.http_timeout_seconds
        )
        self.router = VenueRouter(context, self.client, self.aggregator)
        self.executor = TransactionExecutor(self.client, context)
        self._http = http_client

        logger.info(
            f"TRADE_ENGINE | init | commitment={context.commitment} | "
            f"priority_fee={context.priority_fee_sol:.6f} SOL"
        )

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.context.http_timeout_seconds)
        return self._http

    async def close(self):
        await self.aggregator.close()
        if self._http and not self._http.is_closed:
            await self._http.aclose()
        await self.client.close()

    # =========================================================================
    # TRADES
    # =========================================================================

    async def execute_trade(self, request: TradeRequest, payer: Keypair) -> TradeResult:
        """
        Steps:
        1. Router reads the curve and picks the venue
        2. Router builds the plan (balance checked before any instruction)
        3. Executor signs, submits (one expiry retry) and confirms
        """
        logger.info(
            f"TRADE | start | side={request.side.value} | mint={request.mint[:8]}... | "
            f"amount={request.amount} | slippage_bps={request.slippage_bps}"
        )
        routed = await self.router.route(request, payer)
        tx: TxResult = await self.executor.execute(routed.plan)

        result = TradeResult(
            signature=tx.signature,
            venue=routed.venue,
            side=request.side,
            mint=request.mint,
            amount_in=routed.amount_in,
            expected_out=routed.expected_out,
            bound=routed.bound,
            attempts=tx.attempts,
            blockhash=tx.blockhash,
            slot=tx.slot,
        )
        logger.info(
            f"TRADE | done | venue={result.venue.value} | sig={result.signature} | "
            f"in={result.amount_in} | expected_out={result.expected_out} | attempts={result.attempts}"
        )
        return result

    async def buy(
        self,
        payer: Keypair,
        mint: str,
        sol_amount: Decimal,
        slippage_bps: Optional[int] = None,
    ) -> TradeResult:
        bps = self.context.default_slippage_bps if slippage_bps is None else slippage_bps
        return await self.execute_trade(TradeRequest(Side.BUY, mint, Decimal(str(sol_amount)), bps), payer)

    async def sell(
        self,
        payer: Keypair,
        mint: str,
        token_amount: Decimal,
        slippage_bps: Optional[int] = None,
    ) -> TradeResult:
        bps = self.context.default_slippage_bps if slippage_bps is None else slippage_bps
        return await self.execute_trade(TradeRequest(Side.SELL, mint, Decimal(str(token_amount)), bps), payer)

    # =========================================================================
    # DEPLOY
    # =========================================================================

    async def deploy(
        self,
        creator: Keypair,
        name: str,
        symbol: str,
        uri: str,
        initial_buy_sol: Decimal = Decimal("0"),
        mint: Optional[Keypair] = None,
        simulate: bool = False,
    ) -> DeployResult:
        """
        Create a mint + curve, optionally buying from the initial reserves
        in the same transaction.

        simulate=True returns the simulation logs and submits nothing.
        """
        validate_metadata(name, symbol, uri)
        mint = mint or Keypair()
        creator_pk = creator.pubkey()
        mint_pk = mint.pubkey()

        instructions = compute_budget_instructions(self.context, self.context.create_compute_units)
        instructions.append(build_create_instruction(creator_pk, mint_pk, name, symbol, uri))

        initial_buy_sol = Decimal(str(initial_buy_sol))
        tokens_out = 0
        required = self.context.fee_buffer_lamports
        if initial_buy_sol > 0:
            quote = quote_buy(
                INITIAL_VIRTUAL_SOL_RESERVES,
                INITIAL_VIRTUAL_TOKEN_RESERVES,
                sol_to_lamports(initial_buy_sol),
                self.context.create_slippage_bps,
            )
            tokens_out = quote.amount_out
            rent = await rpc_call(
                "get_minimum_balance_for_rent_exemption",
                self.client.get_minimum_balance_for_rent_exemption(TOKEN_ACCOUNT_SIZE),
            )
            required += quote.bound + rent

            curve_address = addresses.bonding_curve_address(mint_pk)
            user_ata = addresses.associated_token_address(creator_pk, mint_pk, TOKEN_PROGRAM_ID)
            instructions.append(create_associated_token_account(
                payer=creator_pk,
                owner=creator_pk,
                mint=mint_pk,
                token_program_id=TOKEN_PROGRAM_ID,
            ))
            instructions.append(build_buy_instruction(
                user=creator_pk,
                mint=mint_pk,
                bonding_curve=curve_address,
                curve_token_account=addresses.associated_token_address(curve_address, mint_pk, TOKEN_PROGRAM_ID),
                user_token_account=user_ata,
                token_program=TOKEN_PROGRAM_ID,
                creator=creator_pk,
                token_amount=quote.amount_out,
                max_sol_cost=quote.bound,
            ))

        plan = ExecutionPlan(
            instructions=instructions,
            payer=creator,
            signers=[creator, mint],
            kind=EnvelopeKind.LEGACY,
            venue="native",
            label=f"create {symbol}",
        )
        logger.info(
            f"DEPLOY | mint={mint_pk} | symbol={symbol} | initial_buy={initial_buy_sol} SOL | "
            f"tokens_out={tokens_out} | simulate={simulate}"
        )

        if simulate:
            logs = await self.executor.simulate(plan)
            return DeployResult(mint=str(mint_pk), simulation_logs=logs, initial_buy_tokens=tokens_out)

        await self._ensure_balance(creator_pk, required)
        tx = await self.executor.execute(plan)
        return DeployResult(mint=str(mint_pk), signature=tx.signature, initial_buy_tokens=tokens_out)

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    async def _ensure_balance(self, owner: Pubkey, required: int) -> int:
        balance = await self.get_balance(owner)
        if balance < required:
            logger.warning(f"BALANCE | insufficient | need={required} | have={balance}")
            raise InsufficientBalanceError(required, balance)
        return balance

    async def send_sol(
        self,
        payer: Keypair,
        recipient: Union[str, Pubkey],
        sol_amount: Decimal,
    ) -> TransferResult:
        to_pubkey = _pubkey(recipient, "recipient")
        lamports = sol_to_lamports(Decimal(str(sol_amount)))
        await self._ensure_balance(payer.pubkey(), lamports + self.context.fee_buffer_lamports)

        instructions = compute_budget_instructions(self.context, self.context.transfer_compute_units)
        instructions.append(system_transfer(SystemTransferParams(
            from_pubkey=payer.pubkey(),
            to_pubkey=to_pubkey,
            lamports=lamports,
        )))
        plan = ExecutionPlan(instructions=instructions, payer=payer, signers=[payer], label="send sol")

        tx = await self.executor.execute(plan)
        logger.info(f"SEND_SOL | to={to_pubkey} | lamports={lamports} | sig={tx.signature}")
        return TransferResult(signature=tx.signature, recipient=str(to_pubkey), amount=lamports, attempts=tx.attempts)

    async def send_token(
        self,
        payer: Keypair,
        recipient: Union[str, Pubkey],
        mint: Union[str, Pubkey],
        ui_amount: Decimal,
    ) -> TransferResult:
        """Transfer tokens; creates the recipient's token account if missing."""
        owner = payer.pubkey()
        to_owner = _pubkey(recipient, "recipient")
        mint_pk = _pubkey(mint, "mint")

        token_program = await token_program_for_mint(self.client, mint_pk, self.commitment)
        source = addresses.associated_token_address(owner, mint_pk, token_program)
        destination = addresses.associated_token_address(to_owner, mint_pk, token_program)

        source_info = await rpc_call(
            "get_account_info(source_ata)",
            self.client.get_account_info(source, commitment=self.commitment),
        )
        if source_info is None:
            raise PreconditionError(f"No token account for mint {mint_pk} owned by {owner}")

        decimals = await read_token_decimals(self.client, source)
        amount = ui_to_raw(Decimal(str(ui_amount)), decimals)

        instructions = compute_budget_instructions(self.context, self.context.transfer_compute_units)
        dest_info = await rpc_call(
            "get_account_info(destination_ata)",
            self.client.get_account_info(destination, commitment=self.commitment),
        )
        required = self.context.fee_buffer_lamports
        if dest_info is None:
            rent = await rpc_call(
                "get_minimum_balance_for_rent_exemption",
                self.client.get_minimum_balance_for_rent_exemption(TOKEN_ACCOUNT_SIZE),
            )
            required += rent
            instructions.append(create_associated_token_account(
                payer=owner,
                owner=to_owner,
                mint=mint_pk,
                token_program_id=token_program,
            ))
        await self._ensure_balance(owner, required)

        instructions.append(transfer_checked(TransferCheckedParams(
            program_id=token_program,
            source=source,
            mint=mint_pk,
            dest=destination,
            owner=owner,
            amount=amount,
            decimals=decimals,
            signers=[],
        )))
        plan = ExecutionPlan(instructions=instructions, payer=payer, signers=[payer], label="send token")

        tx = await self.executor.execute(plan)
        logger.info(
            f"SEND_TOKEN | mint={str(mint_pk)[:8]}... | to={to_owner} | amount={amount} | sig={tx.signature}"
        )
        return TransferResult(signature=tx.signature, recipient=str(to_owner), amount=amount, attempts=tx.attempts)

    # =========================================================================
    # ACCOUNT QUERIES
    # =========================================================================

    async def get_balance(self, owner: Union[str, Pubkey]) -> int:
        """Lamport balance."""
        return await self.executor.get_balance(_pubkey(owner, "owner"))

    async def preflight_check(self, owner: Union[str, Pubkey], min_sol: float = 0.0) -> PreflightReport:
        """RPC reachable and balance at or above min_sol."""
        owner = _pubkey(owner, "owner")
        min_lamports = int(min_sol * LAMPORTS_PER_SOL)

        rpc_ok = await self.client.is_connected()
        if not rpc_ok:
            logger.error(f"PREFLIGHT | rpc_unreachable | url={self.context.rpc_url}")
            return PreflightReport(rpc_ok=False, balance_lamports=0, min_lamports=min_lamports)

        balance = await self.get_balance(owner)
        report = PreflightReport(rpc_ok=True, balance_lamports=balance, min_lamports=min_lamports)
        logger.info(f"PREFLIGHT | ok={report.ok} | balance={balance} | min={min_lamports}")
        return report

    async def _usd_price(self, mint: str) -> Optional[float]:
        """DexScreener price; None when unavailable."""
        try:
            http = await self._get_http()
            resp = await http.get(f"{DEXSCREENER_TOKENS_URL}/{mint}")
            resp.raise_for_status()
            pairs = resp.json().get("pairs") or []
            if not pairs or pairs[0].get("priceUsd") is None:
                return None
            return float(pairs[0]["priceUsd"])
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            logger.warning(f"PRICE | dexscreener_unavailable | mint={mint[:8]}... | {type(e).__name__}: {e}")
            return None

    async def token_holdings(self, owner: Union[str, Pubkey], with_prices: bool = True) -> List[TokenHolding]:
        """Non-zero token balances under both token programs."""
        owner = _pubkey(owner, "owner")
        holdings: List[TokenHolding] = []

        for program_id in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID):
            accounts = await rpc_call(
                "get_token_accounts_by_owner",
                self.client.get_token_accounts_by_owner_json_parsed(
                    owner, TokenAccountOpts(program_id=program_id), commitment=self.commitment
                ),
            )
            for keyed in accounts:
                info = keyed.account.data.parsed["info"]
                token_amount = info["tokenAmount"]
                amount = int(token_amount["amount"])
                if amount == 0:
                    continue
                holdings.append(TokenHolding(
                    mint=info["mint"],
                    token_account=str(keyed.pubkey),
                    amount=amount,
                    decimals=int(token_amount["decimals"]),
                ))

        if with_prices:
            priced = []
            for h in holdings:
                priced.append(TokenHolding(
                    mint=h.mint,
                    token_account=h.token_account,
                    amount=h.amount,
                    decimals=h.decimals,
                    usd_price=await self._usd_price(h.mint),
                ))
            holdings = priced

        logger.debug(f"HOLDINGS | owner={str(owner)[:8]}... | tokens={len(holdings)}")
        return holdings
