"""Filecoin address parsing and canonicalization.

Textual form: ``<network><protocol><payload>`` where network is ``f``
(mainnet) or ``t`` (testnet), protocol is a single digit and payload is

- protocol 0 (ID): the actor id in decimal
- protocol 1 (secp256k1), 2 (actor), 3 (BLS): lowercase unpadded base32 of
  ``payload || checksum`` where checksum is a 4-byte blake2b digest of
  ``protocol byte || payload``

Either network prefix is accepted on input; :func:`format_address` always
renders with the configured network so stored addresses have one spelling.
"""
import base64
import binascii
import hashlib
from enum import IntEnum
from typing import NamedTuple

from filauth.errors import BadRequest

MAINNET_PREFIX = "f"
TESTNET_PREFIX = "t"

_NETWORK_PREFIXES = {"mainnet": MAINNET_PREFIX, "testnet": TESTNET_PREFIX}

PAYLOAD_HASH_LENGTH = 20
BLS_PUBLIC_KEY_BYTES = 48
CHECKSUM_HASH_LENGTH = 4
MAX_ADDRESS_STRING_LENGTH = 2 + 84
MAX_ID_DIGITS = 20

_current_prefix = TESTNET_PREFIX


class Protocol(IntEnum):
    ID = 0
    SECP256K1 = 1
    ACTOR = 2
    BLS = 3


class InvalidAddress(BadRequest):
    pass


class Address(NamedTuple):
    protocol: Protocol
    payload: bytes

    def __str__(self) -> str:
        return format_address(self)

    @property
    def is_signer(self) -> bool:
        return self.protocol in (Protocol.SECP256K1, Protocol.BLS)

    @property
    def is_miner(self) -> bool:
        return self.protocol in (Protocol.ID, Protocol.ACTOR)


def set_network(network: str) -> None:
    """Select the prefix used to render addresses (``mainnet`` or ``testnet``)"""
    global _current_prefix
    try:
        _current_prefix = _NETWORK_PREFIXES[network.lower()]
    except KeyError:
        raise ValueError(f"unknown network {network!r}, expected mainnet or testnet")


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------

def _checksum(protocol: int, payload: bytes) -> bytes:
    return hashlib.blake2b(bytes([protocol]) + payload, digest_size=CHECKSUM_HASH_LENGTH).digest()


def _put_uvarint(value: int) -> bytes:
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _read_uvarint(data: bytes) -> int:
    value = 0
    shift = 0
    for byte in data:
        value |= (byte & 0x7F) << shift
        if byte < 0x80:
            return value
        shift += 7
    raise InvalidAddress("invalid address payload")


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=").lower()


def _b32decode(text: str) -> bytes:
    if text != text.lower():
        raise InvalidAddress("invalid address payload")
    padded = text.upper() + "=" * (-len(text) % 8)
    try:
        return base64.b32decode(padded)
    except (binascii.Error, ValueError):
        raise InvalidAddress("invalid address payload")


def format_address(addr: Address) -> str:
    if addr.protocol == Protocol.ID:
        return f"{_current_prefix}{int(addr.protocol)}{_read_uvarint(addr.payload)}"
    encoded = _b32encode(addr.payload + _checksum(addr.protocol, addr.payload))
    return f"{_current_prefix}{int(addr.protocol)}{encoded}"


def new_id_address(actor_id: int) -> Address:
    return Address(Protocol.ID, _put_uvarint(actor_id))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_address(text: str) -> Address:
    """Decode any supported textual address; raises :class:`InvalidAddress`"""
    if not isinstance(text, str) or len(text) < 3 or len(text) > MAX_ADDRESS_STRING_LENGTH:
        raise InvalidAddress("invalid address length")
    if text[0] not in (MAINNET_PREFIX, TESTNET_PREFIX):
        raise InvalidAddress("unknown address network")
    try:
        protocol = Protocol(int(text[1]))
    except ValueError:
        raise InvalidAddress("unknown address protocol")

    raw = text[2:]
    if protocol == Protocol.ID:
        if len(raw) > MAX_ID_DIGITS or not raw.isdigit() or not raw.isascii():
            raise InvalidAddress("invalid address payload")
        actor_id = int(raw)
        if actor_id >= 1 << 63:
            raise InvalidAddress("invalid address payload")
        return new_id_address(actor_id)

    decoded = _b32decode(raw)
    if len(decoded) <= CHECKSUM_HASH_LENGTH:
        raise InvalidAddress("invalid address checksum")
    payload, cksum = decoded[:-CHECKSUM_HASH_LENGTH], decoded[-CHECKSUM_HASH_LENGTH:]

    expected_length = BLS_PUBLIC_KEY_BYTES if protocol == Protocol.BLS else PAYLOAD_HASH_LENGTH
    if len(payload) != expected_length:
        raise InvalidAddress("invalid address payload")
    if _checksum(protocol, payload) != cksum:
        raise InvalidAddress("invalid address checksum")
    return Address(protocol, payload)


def parse_miner(text: str) -> Address:
    """Parse a miner address; only ID and actor addresses are accepted"""
    addr = parse_address(text)
    if not addr.is_miner:
        raise InvalidAddress(f"invalid address {text}: invalid protocol type for a miner")
    return addr


def parse_signer(text: str) -> Address:
    """Parse a signer address; only secp256k1 and BLS addresses are accepted"""
    try:
        addr = parse_address(text)
    except InvalidAddress as exc:
        raise InvalidAddress(f"invalid signer address {text!r}: {exc.message}")
    if not addr.is_signer:
        raise InvalidAddress(f"invalid address {text}: invalid protocol type for a signer")
    return addr


def canonical_miner(text: str) -> str:
    return str(parse_miner(text))


def canonical_signer(text: str) -> str:
    return str(parse_signer(text))
