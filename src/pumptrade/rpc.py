"""
Thin guard around solana-py AsyncClient calls.

The node is trusted but unreliable: any transport/node failure is surfaced
as RpcError with the call name and the underlying message.
"""

from __future__ import annotations

from typing import Any, Awaitable

from loguru import logger

from pumptrade.errors import RpcError, TradeEngineError


async def rpc_call(label: str, awaitable: Awaitable[Any]) -> Any:
    """Await an RPC call and return its `.value`."""
    try:
        resp = await awaitable
    except TradeEngineError:
        raise
    except Exception as e:
        logger.error(f"RPC | {label} | error | {type(e).__name__}: {e}")
        raise RpcError(f"{label} failed: {e}") from e
    return resp.value
