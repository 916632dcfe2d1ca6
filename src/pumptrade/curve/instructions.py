"""
Full pump.fun instructions (program id + ordered account metas + payload).

Account order is part of the program's contract and must not change.

BUY / SELL (16 accounts):
     0: global                     (read)
     1: fee recipient              (write)
     2: mint                       (read)
     3: bonding curve              (write)
     4: bonding curve ATA          (write)
     5: user ATA                   (write)
     6: user                       (signer, write)
     7: system program             (read)
     8: token program              (read)
     9: creator vault              (write)
    10: event authority            (read)
    11: pump program               (read)
    12: global volume accumulator  (read)
    13: user volume accumulator    (write)
    14: fee config                 (read)
    15: fee program                (read)

CREATE (17 accounts): see build_create_instruction.
"""

from __future__ import annotations

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from pumptrade.config.programs import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MPL_TOKEN_METADATA_PROGRAM_ID,
    PUMP_FEE_PROGRAM_ID,
    PUMP_FEE_RECIPIENT,
    PUMP_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    SYSVAR_RENT_ID,
    TOKEN_PROGRAM_ID,
)
from pumptrade.curve import addresses
from pumptrade.curve.encoding import encode_buy, encode_create, encode_sell


def _trade_accounts(
    user: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    curve_token_account: Pubkey,
    user_token_account: Pubkey,
    token_program: Pubkey,
    creator: Pubkey,
) -> list:
    return [
        AccountMeta(addresses.global_address(), is_signer=False, is_writable=False),
        AccountMeta(PUMP_FEE_RECIPIENT, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(bonding_curve, is_signer=False, is_writable=True),
        AccountMeta(curve_token_account, is_signer=False, is_writable=True),
        AccountMeta(user_token_account, is_signer=False, is_writable=True),
        AccountMeta(user, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(token_program, is_signer=False, is_writable=False),
        AccountMeta(addresses.creator_vault_address(creator), is_signer=False, is_writable=True),
        AccountMeta(addresses.event_authority_address(), is_signer=False, is_writable=False),
        AccountMeta(PUMP_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(addresses.global_volume_accumulator_address(), is_signer=False, is_writable=False),
        AccountMeta(addresses.user_volume_accumulator_address(user), is_signer=False, is_writable=True),
        AccountMeta(addresses.fee_config_address(), is_signer=False, is_writable=False),
        AccountMeta(PUMP_FEE_PROGRAM_ID, is_signer=False, is_writable=False),
    ]


def build_buy_instruction(
    user: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    curve_token_account: Pubkey,
    user_token_account: Pubkey,
    token_program: Pubkey,
    creator: Pubkey,
    token_amount: int,
    max_sol_cost: int,
) -> Instruction:
    """
    Buy token_amount raw tokens, spending at most max_sol_cost lamports.
    """
    return Instruction(
        PUMP_PROGRAM_ID,
        encode_buy(token_amount, max_sol_cost),
        _trade_accounts(
            user, mint, bonding_curve, curve_token_account,
            user_token_account, token_program, creator,
        ),
    )


def build_sell_instruction(
    user: Pubkey,
    mint: Pubkey,
    bonding_curve: Pubkey,
    curve_token_account: Pubkey,
    user_token_account: Pubkey,
    token_program: Pubkey,
    creator: Pubkey,
    token_amount: int,
    min_sol_output: int,
) -> Instruction:
    """
    Sell token_amount raw tokens, receiving at least min_sol_output lamports.
    """
    return Instruction(
        PUMP_PROGRAM_ID,
        encode_sell(token_amount, min_sol_output),
        _trade_accounts(
            user, mint, bonding_curve, curve_token_account,
            user_token_account, token_program, creator,
        ),
    )


def build_create_instruction(
    creator: Pubkey,
    mint: Pubkey,
    name: str,
    symbol: str,
    uri: str,
) -> Instruction:
    """
    Create a new mint + bonding curve. Mint and creator must both sign.

    New mints always use the legacy token program.
    """
    data = encode_create(name, symbol, uri, creator)
    bonding_curve = addresses.bonding_curve_address(mint)
    curve_token_account = addresses.associated_token_address(bonding_curve, mint, TOKEN_PROGRAM_ID)

    accounts = [
        AccountMeta(mint, is_signer=True, is_writable=True),
        AccountMeta(addresses.mint_authority_address(), is_signer=False, is_writable=False),
        AccountMeta(bonding_curve, is_signer=False, is_writable=True),
        AccountMeta(curve_token_account, is_signer=False, is_writable=True),
        AccountMeta(addresses.global_address(), is_signer=False, is_writable=False),
        AccountMeta(MPL_TOKEN_METADATA_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(addresses.metadata_address(mint), is_signer=False, is_writable=True),
        AccountMeta(creator, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(SYSVAR_RENT_ID, is_signer=False, is_writable=False),
        AccountMeta(addresses.event_authority_address(), is_signer=False, is_writable=False),
        AccountMeta(PUMP_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(addresses.creator_vault_address(creator), is_signer=False, is_writable=True),
        AccountMeta(addresses.global_volume_accumulator_address(), is_signer=False, is_writable=True),
        AccountMeta(addresses.user_volume_accumulator_address(creator), is_signer=False, is_writable=True),
    ]
    return Instruction(PUMP_PROGRAM_ID, data, accounts)
