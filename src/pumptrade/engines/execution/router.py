"""
router.py - Venue selection and execution-plan assembly

The curve's `complete` flag is the only routing input:

    complete=False  ->  NativeRoute      pump program buy/sell, legacy envelope
    complete=True   ->  AggregatorRoute  Jupiter swap, v0 envelope + lookup tables

Every trade re-reads the curve. Nothing about a mint is cached between
requests, so a migration between two trades is picked up by the second one.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import List, Union

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from pumptrade.config.programs import LAMPORTS_PER_SOL, WSOL_MINT
from pumptrade.config.settings import EngineContext
from pumptrade.curve import addresses
from pumptrade.curve.instructions import build_buy_instruction, build_sell_instruction
from pumptrade.curve.pricing import TradeQuote, quote_buy, quote_sell
from pumptrade.curve.state import CurveState, read_curve_state, read_token_decimals, token_program_for_mint
from pumptrade.domain.models import Side, TradeRequest, Venue
from pumptrade.engines.execution.adapters import ExternalQuote, JupiterAdapter
from pumptrade.engines.execution.provisioner import AccountProvisioner
from pumptrade.engines.execution.solana_client import EnvelopeKind, ExecutionPlan, fetch_lookup_tables
from pumptrade.errors import InputValidationError


# =============================================================================
# ROUTES
# =============================================================================

@dataclass(frozen=True)
class NativeRoute:
    curve: CurveState
    amount_in: int

    @property
    def venue(self) -> Venue:
        return Venue.NATIVE


@dataclass(frozen=True)
class AggregatorRoute:
    curve: CurveState
    amount_in: int
    quote: ExternalQuote

    @property
    def venue(self) -> Venue:
        return Venue.AGGREGATOR


Route = Union[NativeRoute, AggregatorRoute]


@dataclass(frozen=True)
class RoutedTrade:
    """An ExecutionPlan plus the numbers it was priced on."""
    plan: ExecutionPlan
    venue: Venue
    amount_in: int
    expected_out: int
    bound: int


def compute_budget_instructions(context: EngineContext, unit_limit: int) -> List[Instruction]:
    """CU limit + CU price for a fixed lamport priority fee."""
    return [
        set_compute_unit_limit(unit_limit),
        set_compute_unit_price(context.compute_unit_price(unit_limit)),
    ]


def sol_to_lamports(amount: Decimal) -> int:
    lamports = int((amount * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))
    if lamports <= 0:
        raise InputValidationError(f"amount {amount} SOL is below one lamport")
    return lamports


def ui_to_raw(amount: Decimal, decimals: int) -> int:
    raw = int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))
    if raw <= 0:
        raise InputValidationError(f"amount {amount} is below one base unit at {decimals} decimals")
    return raw


# =============================================================================
# VENUE ROUTER
# =============================================================================

class VenueRouter:
    """
    Example:
        router = VenueRouter(context, client, JupiterAdapter(context.aggregator_url))
        route = await router.resolve(request, wallet.pubkey())
        routed = await router.build(route, request, wallet)
    """

    def __init__(
        self,
        context: EngineContext,
        client: AsyncClient,
        aggregator: JupiterAdapter,
        provisioner: AccountProvisioner = None,
    ):
        self.context = context
        self.client = client
        self.aggregator = aggregator
        self.commitment = Commitment(context.commitment)
        self.provisioner = provisioner or AccountProvisioner(
            client, context.fee_buffer_lamports, commitment=self.commitment
        )

    async def _raw_amount(self, request: TradeRequest, payer: Pubkey, curve: CurveState) -> int:
        if request.side is Side.BUY:
            return sol_to_lamports(request.amount)
        user_ata = addresses.associated_token_address(payer, curve.mint, curve.token_program)
        decimals = await read_token_decimals(self.client, user_ata)
        return ui_to_raw(request.amount, decimals)

    async def resolve(self, request: TradeRequest, payer: Pubkey) -> Route:
        """Read a fresh curve and pick the venue. Only complete curves touch Jupiter."""
        mint = request.mint_pubkey
        token_program = await token_program_for_mint(self.client, mint, self.commitment)
        curve = await read_curve_state(self.client, mint, token_program, self.commitment)
        amount_in = await self._raw_amount(request, payer, curve)

        if not curve.complete:
            logger.info(
                f"ROUTER | venue=native | side={request.side.value} | mint={request.mint[:8]}... | "
                f"amount_in={amount_in}"
            )
            return NativeRoute(curve=curve, amount_in=amount_in)

        if request.side is Side.BUY:
            input_mint, output_mint = WSOL_MINT, request.mint
        else:
            input_mint, output_mint = request.mint, WSOL_MINT

        quote = await self.aggregator.get_quote(input_mint, output_mint, amount_in, request.slippage_bps)
        logger.info(
            f"ROUTER | venue=aggregator | side={request.side.value} | mint={request.mint[:8]}... | "
            f"in={quote.in_amount} | out={quote.out_amount}"
        )
        return AggregatorRoute(curve=curve, amount_in=amount_in, quote=quote)

    async def build(self, route: Route, request: TradeRequest, payer: Keypair) -> RoutedTrade:
        if isinstance(route, NativeRoute):
            return await self._build_native(route, request, payer)
        return await self._build_aggregator(route, request, payer)

    async def route(self, request: TradeRequest, payer: Keypair) -> RoutedTrade:
        route = await self.resolve(request, payer.pubkey())
        return await self.build(route, request, payer)

    # =========================================================================
    # NATIVE PATH
    # =========================================================================

    async def _build_native(self, route: NativeRoute, request: TradeRequest, payer: Keypair) -> RoutedTrade:
        """
        Steps:
        1. Quote against the snapshot's virtual reserves
        2. Assess accounts and fail on shortfall before building anything
        3. compute budget + setup + trade instruction
        """
        curve = route.curve
        user = payer.pubkey()

        quote: TradeQuote
        if request.side is Side.BUY:
            quote = quote_buy(
                curve.virtual_sol_reserves, curve.virtual_token_reserves,
                route.amount_in, request.slippage_bps,
            )
            provision = await self.provisioner.assess(user, curve, trade_lamports=quote.amount_in)
        else:
            quote = quote_sell(
                curve.virtual_sol_reserves, curve.virtual_token_reserves,
                route.amount_in, request.slippage_bps,
            )
            provision = await self.provisioner.assess(
                user, curve, trade_lamports=0, create_user_account=False
            )
        provision.ensure_affordable()

        trade_args = dict(
            user=user,
            mint=curve.mint,
            bonding_curve=curve.curve_address,
            curve_token_account=curve.curve_token_account,
            user_token_account=provision.user_token_account,
            token_program=curve.token_program,
            creator=curve.creator,
        )
        if request.side is Side.BUY:
            trade_ix = build_buy_instruction(
                **trade_args, token_amount=quote.amount_out, max_sol_cost=quote.bound
            )
        else:
            trade_ix = build_sell_instruction(
                **trade_args, token_amount=quote.amount_in, min_sol_output=quote.bound
            )

        instructions = compute_budget_instructions(self.context, self.context.trade_compute_units)
        instructions.extend(provision.setup_instructions())
        instructions.append(trade_ix)

        plan = ExecutionPlan(
            instructions=instructions,
            payer=payer,
            signers=[payer],
            kind=EnvelopeKind.LEGACY,
            venue=Venue.NATIVE.value,
            label=f"{request.side.value.lower()} {request.mint[:8]}",
        )
        logger.debug(
            f"ROUTER | native_plan | ixs={len(instructions)} | out={quote.amount_out} | bound={quote.bound}"
        )
        return RoutedTrade(
            plan=plan,
            venue=Venue.NATIVE,
            amount_in=quote.amount_in,
            expected_out=quote.amount_out,
            bound=quote.bound,
        )

    # =========================================================================
    # AGGREGATOR PATH
    # =========================================================================

    async def _build_aggregator(
        self,
        route: AggregatorRoute,
        request: TradeRequest,
        payer: Keypair,
    ) -> RoutedTrade:
        cu_price = self.context.compute_unit_price(self.context.aggregator_compute_units)
        swap = await self.aggregator.get_swap_instructions(route.quote, str(payer.pubkey()), cu_price)

        tables = list(swap.lookup_tables)
        if swap.lookup_table_addresses:
            tables.extend(await fetch_lookup_tables(self.client, swap.lookup_table_addresses))

        plan = ExecutionPlan(
            instructions=swap.instructions,
            payer=payer,
            signers=[payer],
            kind=EnvelopeKind.VERSIONED,
            lookup_tables=tables,
            venue=Venue.AGGREGATOR.value,
            label=f"jupiter {request.side.value.lower()} {request.mint[:8]}",
        )
        logger.debug(f"ROUTER | aggregator_plan | ixs={len(swap.instructions)} | alts={len(tables)}")
        return RoutedTrade(
            plan=plan,
            venue=Venue.AGGREGATOR,
            amount_in=route.quote.in_amount,
            expected_out=route.quote.out_amount,
            bound=route.quote.other_amount_threshold,
        )
