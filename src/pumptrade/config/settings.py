"""
Engine context and logging setup.

Policy (same as the V1-lite engine):
- Load .env ONCE at boot, build a frozen EngineContext, never read env again.
- The context is passed explicitly into every engine object; there is no
  process-wide connection or config state.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

from pumptrade.config.programs import LAMPORTS_PER_SOL


@dataclass(frozen=True)
class EngineContext:
    """
    Immutable engine settings. Built once at boot.

    Fee parameters are in lamports; compute budgets in compute units.
    """
    rpc_url: str
    commitment: str = "confirmed"
    aggregator_url: str = "https://public.jupiterapi.com"
    http_timeout_seconds: float = 30.0

    # 0.0001 SOL priority fee spread over the compute-unit limit
    priority_fee_lamports: int = 100_000
    trade_compute_units: int = 300_000
    create_compute_units: int = 400_000
    transfer_compute_units: int = 100_000
    aggregator_compute_units: int = 600_000

    # ~0.0005 SOL kept aside for signature + priority fees
    fee_buffer_lamports: int = 500_000

    confirm_timeout_seconds: float = 60.0
    confirm_poll_seconds: float = 0.5
    max_send_retries: int = 5

    default_slippage_bps: int = 500
    create_slippage_bps: int = 1000

    def __post_init__(self):
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        if self.commitment not in ("processed", "confirmed", "finalized"):
            raise ValueError(f"unknown commitment: {self.commitment}")
        if self.priority_fee_lamports < 0 or self.fee_buffer_lamports < 0:
            raise ValueError("fee parameters must be non-negative")
        for units in (
            self.trade_compute_units,
            self.create_compute_units,
            self.transfer_compute_units,
            self.aggregator_compute_units,
        ):
            if units <= 0:
                raise ValueError("compute unit limits must be positive")
        for bps in (self.default_slippage_bps, self.create_slippage_bps):
            if not 0 <= bps <= 10_000:
                raise ValueError("slippage bps must be within [0, 10000]")

    def compute_unit_price(self, unit_limit: int) -> int:
        """Priority price in micro-lamports per CU for a fixed lamport fee."""
        return max(0, (self.priority_fee_lamports * 1_000_000) // unit_limit)

    @property
    def priority_fee_sol(self) -> float:
        return self.priority_fee_lamports / LAMPORTS_PER_SOL


def load_context_or_exit(env_file: Optional[str] = None) -> EngineContext:
    """
    THE ONLY FUNCTION THAT CALLS os.getenv().

    Exits on missing required values.
    """
    load_dotenv(env_file)

    rpc_url = os.getenv("RPC_URL", "").strip()
    if not rpc_url:
        print("FATAL: RPC_URL not set", file=sys.stderr)
        sys.exit(1)

    try:
        context = EngineContext(
            rpc_url=rpc_url,
            aggregator_url=os.getenv("JUPITER_URL", "https://public.jupiterapi.com").strip(),
            priority_fee_lamports=int(os.getenv("PRIORITY_FEE_LAMPORTS", "100000")),
            confirm_timeout_seconds=float(os.getenv("CONFIRM_TIMEOUT", "60")),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT", "30")),
        )
    except ValueError as e:
        print(f"FATAL: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(os.getenv("LOG_LEVEL", "INFO").upper(), os.getenv("LOG_FILE") or None)
    return context


def configure_logging(level: str = "INFO", log_path: Optional[str] = None) -> None:
    """Replace loguru's default sink; optionally mirror to a rotating file."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level,
    )
    if log_path:
        logger.add(
            log_path,
            rotation="1 day",
            retention="30 days",
            level="DEBUG",
        )
