from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from fakes import FakeAggregator, FakeRpcClient, account, confirmed_status, curve_account_data
from pumptrade.config.programs import ASSOCIATED_TOKEN_PROGRAM_ID, PUMP_PROGRAM_ID, TOKEN_PROGRAM_ID
from pumptrade.curve import addresses
from pumptrade.domain.models import Side, Venue
from pumptrade.engines import TradeEngine
from pumptrade.engines.execution.solana_client import TxOutcome, TxResult
from pumptrade.errors import InputValidationError, InsufficientBalanceError, PreconditionError


def _engine(context, rpc, handler=None) -> TradeEngine:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler or (lambda r: httpx.Response(404))))
    return TradeEngine(context, client=rpc, aggregator=FakeAggregator(), http_client=http)


def _capture(monkeypatch, engine: TradeEngine):
    plans = []

    async def _execute(plan):
        plans.append(plan)
        return TxResult(outcome=TxOutcome.CONFIRMED, signature="sig", attempts=1, blockhash="bh")

    monkeypatch.setattr(engine.executor, "execute", _execute)
    return plans


@pytest.mark.anyio
async def test_buy_end_to_end_on_live_curve(context):
    rpc = FakeRpcClient()
    payer = Keypair()
    rpc.balances[payer.pubkey()] = 5 * 10**9
    mint = Pubkey.new_unique()
    rpc.accounts[mint] = account()
    curve = addresses.bonding_curve_address(mint)
    rpc.accounts[curve] = account(curve_account_data(), lamports=rpc.rent)
    rpc.accounts[addresses.associated_token_address(curve, mint)] = account()
    rpc.statuses = [confirmed_status(slot=9)]
    engine = _engine(context, rpc)

    result = await engine.buy(payer, str(mint), Decimal("1"))

    assert result.venue is Venue.NATIVE
    assert result.side is Side.BUY
    assert result.amount_in == 1_000_000_000
    assert result.expected_out == 34_612_903_225_807
    assert result.bound == 1_050_000_000
    assert result.attempts == 1
    assert result.slot == 9
    assert len(rpc.sent) == 1
    await engine.close()
    assert rpc.closed


@pytest.mark.anyio
async def test_trade_request_validation(context):
    engine = _engine(context, FakeRpcClient())
    with pytest.raises(InputValidationError):
        await engine.buy(Keypair(), str(Pubkey.new_unique()), Decimal("0"))
    with pytest.raises(InputValidationError):
        await engine.sell(Keypair(), "not-a-mint", Decimal("1"))
    with pytest.raises(InputValidationError):
        await engine.buy(Keypair(), str(Pubkey.new_unique()), Decimal("1"), slippage_bps=10_001)


@pytest.mark.anyio
async def test_deploy_simulation_builds_create_and_initial_buy(context, monkeypatch):
    rpc = FakeRpcClient()
    engine = _engine(context, rpc)
    creator, mint = Keypair(), Keypair()
    simulated = []

    async def _simulate(plan):
        simulated.append(plan)
        return ["Program log: Instruction: Create"]

    monkeypatch.setattr(engine.executor, "simulate", _simulate)

    result = await engine.deploy(
        creator, "Moon", "MOON", "https://x/meta.json",
        initial_buy_sol=Decimal("1"), mint=mint, simulate=True,
    )

    assert result.mint == str(mint.pubkey())
    assert result.signature is None
    assert result.simulation_logs == ["Program log: Instruction: Create"]
    assert result.initial_buy_tokens == 34_612_903_225_807

    (plan,) = simulated
    programs = [ix.program_id for ix in plan.instructions]
    assert programs[2:] == [PUMP_PROGRAM_ID, ASSOCIATED_TOKEN_PROGRAM_ID, PUMP_PROGRAM_ID]
    assert {kp.pubkey() for kp in plan.signers} == {creator.pubkey(), mint.pubkey()}
    assert rpc.sent == []


@pytest.mark.anyio
async def test_deploy_simulation_signs_for_real(context):
    rpc = FakeRpcClient()
    engine = _engine(context, rpc)
    result = await engine.deploy(Keypair(), "Moon", "MOON", "https://x", simulate=True)
    assert result.simulation_logs == ["Program log: ok"]


@pytest.mark.anyio
async def test_deploy_rejects_bad_metadata_before_network(context):
    rpc = FakeRpcClient()
    engine = _engine(context, rpc)
    with pytest.raises(InputValidationError):
        await engine.deploy(Keypair(), "x" * 33, "MOON", "https://x")
    assert rpc.blockhashes == []


@pytest.mark.anyio
async def test_deploy_requires_balance(context):
    rpc = FakeRpcClient()
    engine = _engine(context, rpc)
    with pytest.raises(InsufficientBalanceError):
        await engine.deploy(Keypair(), "Moon", "MOON", "https://x", initial_buy_sol=Decimal("0.1"))
    assert rpc.sent == []


@pytest.mark.anyio
async def test_send_sol(context, monkeypatch):
    rpc = FakeRpcClient()
    payer = Keypair()
    rpc.balances[payer.pubkey()] = 10**9
    engine = _engine(context, rpc)
    plans = _capture(monkeypatch, engine)
    recipient = Pubkey.new_unique()

    result = await engine.send_sol(payer, str(recipient), Decimal("0.25"))

    assert result.amount == 250_000_000
    assert result.recipient == str(recipient)
    assert plans[0].instructions[-1].program_id == SYSTEM_PROGRAM_ID


@pytest.mark.anyio
async def test_send_sol_insufficient(context):
    rpc = FakeRpcClient()
    payer = Keypair()
    rpc.balances[payer.pubkey()] = 10**6
    engine = _engine(context, rpc)
    with pytest.raises(InsufficientBalanceError):
        await engine.send_sol(payer, Pubkey.new_unique(), Decimal("1"))


@pytest.mark.anyio
async def test_send_token_creates_receiver_account(context, monkeypatch):
    rpc = FakeRpcClient()
    payer = Keypair()
    mint, recipient = Pubkey.new_unique(), Pubkey.new_unique()
    rpc.accounts[mint] = account(owner=TOKEN_PROGRAM_ID)
    source = addresses.associated_token_address(payer.pubkey(), mint)
    rpc.accounts[source] = account()
    rpc.decimals[source] = 6
    rpc.balances[payer.pubkey()] = 10**9
    engine = _engine(context, rpc)
    plans = _capture(monkeypatch, engine)

    result = await engine.send_token(payer, recipient, mint, Decimal("12.5"))

    assert result.amount == 12_500_000
    programs = [ix.program_id for ix in plans[0].instructions]
    assert programs[2:] == [ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID]


@pytest.mark.anyio
async def test_send_token_without_source_account(context):
    rpc = FakeRpcClient()
    mint = Pubkey.new_unique()
    rpc.accounts[mint] = account()
    engine = _engine(context, rpc)
    with pytest.raises(PreconditionError):
        await engine.send_token(Keypair(), Pubkey.new_unique(), mint, Decimal("1"))


@pytest.mark.anyio
async def test_preflight(context):
    rpc = FakeRpcClient()
    owner = Pubkey.new_unique()
    rpc.balances[owner] = 20_000_000
    engine = _engine(context, rpc)

    assert (await engine.preflight_check(owner, min_sol=0.01)).ok
    assert not (await engine.preflight_check(owner, min_sol=0.05)).ok

    rpc.connected = False
    report = await engine.preflight_check(owner)
    assert not report.rpc_ok and not report.ok


def _parsed(mint: Pubkey, amount: int, decimals: int = 6):
    return SimpleNamespace(
        pubkey=Pubkey.new_unique(),
        account=SimpleNamespace(data=SimpleNamespace(parsed={
            "info": {"mint": str(mint), "tokenAmount": {"amount": str(amount), "decimals": decimals}},
        })),
    )


@pytest.mark.anyio
async def test_token_holdings_with_best_effort_prices(context):
    rpc = FakeRpcClient()
    owner = Pubkey.new_unique()
    priced, unpriced, empty = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()
    rpc.parsed_token_accounts[TOKEN_PROGRAM_ID] = [
        _parsed(priced, 2_000_000),
        _parsed(unpriced, 5),
        _parsed(empty, 0),
    ]

    def _dexscreener(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(str(priced)):
            return httpx.Response(200, json={"pairs": [{"priceUsd": "0.5"}]})
        return httpx.Response(503)

    engine = _engine(context, rpc, handler=_dexscreener)
    holdings = await engine.token_holdings(owner)

    by_mint = {h.mint: h for h in holdings}
    assert set(by_mint) == {str(priced), str(unpriced)}
    assert by_mint[str(priced)].usd_price == 0.5
    assert by_mint[str(priced)].usd_value == pytest.approx(1.0)
    assert by_mint[str(unpriced)].usd_price is None
    assert by_mint[str(unpriced)].usd_value is None


@pytest.mark.anyio
@pytest.mark.parametrize("recipient", [12345, None, "not-an-address"])
async def test_send_sol_rejects_malformed_recipient(context, recipient):
    rpc = FakeRpcClient()
    engine = _engine(context, rpc)
    with pytest.raises(InputValidationError, match="invalid recipient address"):
        await engine.send_sol(Keypair(), recipient, Decimal("0.1"))
    assert rpc.sent == []
