"""
Penumbra identity keys
Parsing and display of validator identity keys in their bech32m form
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from errors import MalformedIdentity

IDENTITY_KEY_PREFIX = "penumbravalid"
IDENTITY_KEY_LENGTH = 32

BECH32M_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32M_CONST = 0x2BC830A3
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

# Penumbra strings exceed the 90 character limit of BIP-173, so none is applied
_BECH32M_PATTERN = re.compile(r"^[\x21-\x7e]+1[" + BECH32M_CHARSET + r"]{6,}$")


def _polymod(values: List[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i, gen in enumerate(_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data, from_bits: int, to_bits: int, pad: bool) -> Optional[List[int]]:
    """Regroup a sequence of from_bits-wide integers into to_bits-wide ones"""
    acc = 0
    bits = 0
    out = []
    maxv = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            return None
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        return None
    return out


def bech32m_encode(hrp: str, data: List[int]) -> str:
    """Encode 5-bit values under a human-readable prefix"""
    values = _hrp_expand(hrp) + list(data)
    polymod = _polymod(values + [0] * 6) ^ BECH32M_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(BECH32M_CHARSET[d] for d in list(data) + checksum)


def bech32m_decode(text: str) -> Tuple[str, List[int]]:
    """
    Decode a bech32m string into its prefix and 5-bit payload

    Raises ValueError when the string is malformed or the checksum fails.
    """
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case")
    text = text.lower()
    if not _BECH32M_PATTERN.match(text):
        raise ValueError("invalid bech32m string")

    pos = text.rfind("1")
    hrp = text[:pos]
    data = [BECH32M_CHARSET.find(c) for c in text[pos + 1:]]
    if _polymod(_hrp_expand(hrp) + data) != BECH32M_CONST:
        raise ValueError("invalid checksum")
    return hrp, data[:-6]


@dataclass(frozen=True)
class IdentityKey:
    """Validator identity key (32 raw bytes)"""

    ik: bytes

    @classmethod
    def parse(cls, text: str) -> IdentityKey:
        """Parse the display form, e.g. penumbravalid1..."""
        try:
            hrp, data = bech32m_decode(text)
        except ValueError as e:
            raise MalformedIdentity(f"invalid identity key {text!r}: {e}") from e

        if hrp != IDENTITY_KEY_PREFIX:
            raise MalformedIdentity(
                f"invalid identity key {text!r}: expected prefix {IDENTITY_KEY_PREFIX}"
            )

        raw = _convert_bits(data, 5, 8, False)
        if raw is None or len(raw) != IDENTITY_KEY_LENGTH:
            raise MalformedIdentity(
                f"invalid identity key {text!r}: expected {IDENTITY_KEY_LENGTH} bytes"
            )
        return cls(bytes(raw))

    @classmethod
    def from_proto(cls, message: Dict[str, Any]) -> IdentityKey:
        """Build from the proto3-JSON message {"ik": "<base64>"}"""
        try:
            raw = base64.b64decode(message["ik"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise MalformedIdentity(f"invalid identity key message: {message!r}") from e

        if len(raw) != IDENTITY_KEY_LENGTH:
            raise MalformedIdentity(
                f"invalid identity key message: expected {IDENTITY_KEY_LENGTH} bytes"
            )
        return cls(raw)

    def to_proto(self) -> Dict[str, str]:
        return {"ik": base64.b64encode(self.ik).decode("ascii")}

    def __str__(self) -> str:
        return bech32m_encode(IDENTITY_KEY_PREFIX, _convert_bits(self.ik, 8, 5, True))
