"""
On-chain program ids, fixed accounts and seed literals for the pump.fun venue.

Kept in one place so the address deriver, instruction builders and tests
all agree on the exact bytes the remote programs expect.
"""

from __future__ import annotations

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)

# NOTE: mainnet ids; verify before pointing at another cluster.
PUMP_PROGRAM_ID = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
PUMP_FEE_PROGRAM_ID = Pubkey.from_string("pfeeUxB6jkeY1Hxd7CsFCAjcbHA9rWtchMGdZ6VojVZ")
PUMP_FEE_RECIPIENT = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM")
MPL_TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
SYSVAR_RENT_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

WSOL_MINT = "So11111111111111111111111111111111111111112"

LAMPORTS_PER_SOL = 1_000_000_000

# SPL token account size (bytes) for rent-exemption lookups
TOKEN_ACCOUNT_SIZE = 165

# Initial virtual reserves of a freshly created curve
INITIAL_VIRTUAL_SOL_RESERVES = 30_000_000_000
INITIAL_VIRTUAL_TOKEN_RESERVES = 1_073_000_000_000_000

# Fallback when a token account's decimals cannot be read
DEFAULT_TOKEN_DECIMALS = 6

# Seed literals
SEED_GLOBAL = b"global"
SEED_BONDING_CURVE = b"bonding-curve"
SEED_MINT_AUTHORITY = b"mint-authority"
SEED_METADATA = b"metadata"
SEED_CREATOR_VAULT = b"creator-vault"
SEED_EVENT_AUTHORITY = b"__event_authority"
SEED_GLOBAL_VOLUME_ACCUMULATOR = b"global_volume_accumulator"
SEED_USER_VOLUME_ACCUMULATOR = b"user_volume_accumulator"
SEED_FEE_CONFIG = b"fee_config"


__all__ = [
    "PUMP_PROGRAM_ID",
    "PUMP_FEE_PROGRAM_ID",
    "PUMP_FEE_RECIPIENT",
    "MPL_TOKEN_METADATA_PROGRAM_ID",
    "SYSVAR_RENT_ID",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "TOKEN_2022_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "WSOL_MINT",
    "LAMPORTS_PER_SOL",
    "TOKEN_ACCOUNT_SIZE",
    "INITIAL_VIRTUAL_SOL_RESERVES",
    "INITIAL_VIRTUAL_TOKEN_RESERVES",
    "DEFAULT_TOKEN_DECIMALS",
    "SEED_GLOBAL",
    "SEED_BONDING_CURVE",
    "SEED_MINT_AUTHORITY",
    "SEED_METADATA",
    "SEED_CREATOR_VAULT",
    "SEED_EVENT_AUTHORITY",
    "SEED_GLOBAL_VOLUME_ACCUMULATOR",
    "SEED_USER_VOLUME_ACCUMULATOR",
    "SEED_FEE_CONFIG",
]
