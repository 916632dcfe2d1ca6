"""
jupiter_adapter.py - Jupiter aggregator client for migrated (complete) curves

Two sequential calls per trade:
1. GET  /quote               -> route + outAmount for the exact input amount
2. POST /swap-instructions   -> instruction descriptors + lookup tables

Jupiter picks the route. We only rebuild its descriptors into solders
Instructions so the executor can compile a v0 message and sign it.

Any HTTP error or malformed body is FATAL (QuoteError / SwapInstructionsError)
with the remote status and message attached. No retry here; the only retry
in the engine is the executor's single blockhash-expiry resubmission.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from pumptrade.errors import QuoteError, SwapInstructionsError


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class ExternalQuote:
    """Raw Jupiter quote plus the fields the engine reads from it."""
    raw: Dict[str, Any]
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    slippage_bps: int
    price_impact_pct: Optional[float] = None


@dataclass
class SwapInstructions:
    """Rebuilt instruction set, in execution order."""
    instructions: List[Instruction]
    lookup_table_addresses: List[Pubkey] = field(default_factory=list)
    lookup_tables: List[AddressLookupTableAccount] = field(default_factory=list)


# =============================================================================
# DESCRIPTOR PARSING
# =============================================================================

def instruction_from_descriptor(desc: Dict[str, Any]) -> Instruction:
    """
    {programId, accounts:[{pubkey,isSigner,isWritable}], data: base64} -> Instruction
    """
    try:
        program_id = Pubkey.from_string(desc["programId"])
        accounts = [
            AccountMeta(
                Pubkey.from_string(a["pubkey"]),
                is_signer=bool(a["isSigner"]),
                is_writable=bool(a["isWritable"]),
            )
            for a in desc.get("accounts", [])
        ]
        data = base64.b64decode(desc.get("data", ""), validate=True)
    except (KeyError, TypeError, ValueError) as e:
        raise SwapInstructionsError(f"malformed instruction descriptor: {type(e).__name__}: {e}") from e
    return Instruction(program_id, data, accounts)


def _lookup_table_from_descriptor(desc: Dict[str, Any]) -> AddressLookupTableAccount:
    try:
        return AddressLookupTableAccount(
            Pubkey.from_string(desc["key"]),
            [Pubkey.from_string(a) for a in desc["addresses"]],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SwapInstructionsError(f"malformed lookup table descriptor: {type(e).__name__}: {e}") from e


def _remote_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


# =============================================================================
# JUPITER ADAPTER
# =============================================================================

class JupiterAdapter:
    """
    Jupiter quote + swap-instructions client.

    Example:
        adapter = JupiterAdapter("https://public.jupiterapi.com")
        quote = await adapter.get_quote(WSOL_MINT, mint, lamports, 500)
        swap = await adapter.get_swap_instructions(quote, str(wallet), cu_price)
    """

    def __init__(
        self,
        base_url: str,
        http_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_timeout = http_timeout
        self._client = client

        logger.info(f"JUPITER_ADAPTER | init | base_url={self.base_url}")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.http_timeout)
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # =========================================================================
    # QUOTE API
    # =========================================================================

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> ExternalQuote:
        """
        Quote an exact-in swap.

        Args:
            input_mint: Input token mint
            output_mint: Output token mint
            amount: Amount in smallest unit
            slippage_bps: Slippage in basis points
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "onlyDirectRoutes": "false",
        }

        client = await self._get_client()
        try:
            resp = await client.get(f"{self.base_url}/quote", params=params)
        except httpx.HTTPError as e:
            logger.error(f"JUPITER_QUOTE | transport_error | {type(e).__name__}: {e}")
            raise QuoteError(f"{type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            message = _remote_message(resp)
            logger.error(f"JUPITER_QUOTE | http_error | status={resp.status_code} | {message}")
            raise QuoteError(message, status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise QuoteError("Invalid quote from Jupiter: body is not JSON", status=resp.status_code) from e

        if not isinstance(data, dict) or not data.get("outAmount"):
            logger.error("JUPITER_QUOTE | invalid_response | missing outAmount")
            raise QuoteError("Invalid quote from Jupiter: missing outAmount", status=resp.status_code)

        try:
            quote = ExternalQuote(
                raw=data,
                input_mint=data.get("inputMint", input_mint),
                output_mint=data.get("outputMint", output_mint),
                in_amount=int(data.get("inAmount", amount)),
                out_amount=int(data["outAmount"]),
                other_amount_threshold=int(data.get("otherAmountThreshold", 0)),
                slippage_bps=int(data.get("slippageBps", slippage_bps)),
                price_impact_pct=float(data["priceImpactPct"]) if data.get("priceImpactPct") is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise QuoteError(f"Invalid quote from Jupiter: {e}", status=resp.status_code) from e

        logger.debug(f"JUPITER_QUOTE | success | in={quote.in_amount} out={quote.out_amount}")
        return quote

    # =========================================================================
    # SWAP INSTRUCTIONS API
    # =========================================================================

    async def get_swap_instructions(
        self,
        quote: ExternalQuote,
        user_pubkey: str,
        compute_unit_price_micro_lamports: int,
    ) -> SwapInstructions:
        """
        Fetch instructions for a quote and rebuild them in execution order:
        compute budget, setup, swap, cleanup.
        """
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_pubkey,
            "wrapAndUnwrapSol": True,
            "computeUnitPriceMicroLamports": compute_unit_price_micro_lamports,
            "useSharedAccounts": True,
        }

        client = await self._get_client()
        try:
            resp = await client.post(f"{self.base_url}/swap-instructions", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"JUPITER_SWAP | transport_error | {type(e).__name__}: {e}")
            raise SwapInstructionsError(f"{type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            message = _remote_message(resp)
            logger.error(f"JUPITER_SWAP | http_error | status={resp.status_code} | {message}")
            raise SwapInstructionsError(message, status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise SwapInstructionsError("body is not JSON", status=resp.status_code) from e

        if not isinstance(data, dict):
            raise SwapInstructionsError("unexpected response shape", status=resp.status_code)
        if data.get("error"):
            raise SwapInstructionsError(str(data["error"]), status=resp.status_code)
        if not data.get("swapInstruction"):
            logger.error("JUPITER_SWAP | missing swapInstruction")
            raise SwapInstructionsError("missing swapInstruction", status=resp.status_code)

        descriptors: List[Dict[str, Any]] = []
        descriptors.extend(data.get("computeBudgetInstructions") or [])
        descriptors.extend(data.get("setupInstructions") or [])
        descriptors.append(data["swapInstruction"])
        if data.get("cleanupInstruction"):
            descriptors.append(data["cleanupInstruction"])

        instructions = [instruction_from_descriptor(d) for d in descriptors]

        try:
            table_addresses = [Pubkey.from_string(a) for a in data.get("addressLookupTableAddresses") or []]
        except (TypeError, ValueError) as e:
            raise SwapInstructionsError(f"malformed lookup table address: {e}") from e
        inline_tables = [
            _lookup_table_from_descriptor(t) for t in data.get("addressLookupTableAccounts") or []
        ]

        logger.debug(
            f"JUPITER_SWAP | success | ixs={len(instructions)} | "
            f"alts={len(table_addresses) + len(inline_tables)}"
        )
        return SwapInstructions(
            instructions=instructions,
            lookup_table_addresses=table_addresses,
            lookup_tables=inline_tables,
        )
