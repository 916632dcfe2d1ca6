"""
Key material -> solders Keypair.

ACCEPTS:
    - base58 string decoding to exactly 64 bytes
    - JSON array of 64 ints (solana-keygen format), as a string or list
    - wallet files shaped as {"privateKey": "<b58>"}, {"secretKey": [...]} or [...]

NEVER LOG: key bytes or decoded values. Error messages describe shape only.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence, Union

import base58
from solders.keypair import Keypair

from pumptrade.errors import KeyMaterialError

_B58_CHARS = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


def _from_byte_array(values: Sequence[Any]) -> Keypair:
    if len(values) != 64:
        raise KeyMaterialError(f"secret key array has {len(values)} entries, expected 64")
    try:
        key_bytes = bytes(int(v) for v in values)
    except (TypeError, ValueError) as e:
        raise KeyMaterialError("secret key array must contain integers in [0, 255]") from e
    return _from_bytes(key_bytes)


def _from_bytes(key_bytes: bytes) -> Keypair:
    try:
        return Keypair.from_bytes(key_bytes)
    except ValueError as e:
        raise KeyMaterialError("secret key bytes do not form a valid keypair") from e


def keypair_from_private_key(private_key: Union[str, Sequence[int]]) -> Keypair:
    """Resolve a base58 string or a 64-byte JSON array into a Keypair."""
    if isinstance(private_key, (list, tuple)):
        return _from_byte_array(private_key)
    if not private_key or not isinstance(private_key, str):
        raise KeyMaterialError("private key is empty")

    private_key = private_key.strip()
    if private_key.startswith("["):
        try:
            values = json.loads(private_key)
        except ValueError as e:
            raise KeyMaterialError("private key looks like a JSON array but does not parse") from e
        if not isinstance(values, list):
            raise KeyMaterialError("private key JSON must be an array")
        return _from_byte_array(values)

    if not all(c in _B58_CHARS for c in private_key):
        raise KeyMaterialError("private key contains invalid characters (must be base58)")

    key_bytes = base58.b58decode(private_key)
    if len(key_bytes) != 64:
        raise KeyMaterialError(f"private key decoded to {len(key_bytes)} bytes, expected 64")
    return _from_bytes(key_bytes)


def load_keypair_file(path: Union[str, Path]) -> Keypair:
    """Load a wallet file in any of the three supported shapes."""
    path = Path(path)
    try:
        payload = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise KeyMaterialError(f"wallet file not found: {path}") from e
    except ValueError as e:
        raise KeyMaterialError(f"wallet file is not valid JSON: {path}") from e

    if isinstance(payload, list):
        return _from_byte_array(payload)
    if isinstance(payload, dict):
        if payload.get("privateKey"):
            return keypair_from_private_key(payload["privateKey"])
        if payload.get("secretKey"):
            return keypair_from_private_key(payload["secretKey"])
    raise KeyMaterialError(f"wallet file has no privateKey or secretKey: {path}")
