"""Commitment helpers shared by the escrow, the binder and the verifier.

Hex inputs arrive from wallets, VCs and HTTP bodies with or without a
``0x`` prefix and in any case. Everything here parses them into bytes of
a fixed size or raises ValidationError naming the offending field.
"""

from __future__ import annotations

from eth_abi.packed import encode_packed
from eth_utils import is_address, keccak, to_checksum_address

from provenance_escrow.domain.exceptions import ValidationError

ZERO_BYTES32 = "0x" + "00" * 32
MAX_UINT256 = 2**256 - 1
MAX_PROOF_VALUE = 2**64 - 1  # range proofs cover u64


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def parse_hex(value: str | bytes, field: str, size: int | None = None) -> bytes:
    """Decode a hex string (optional ``0x``) into bytes.

    Args:
        value: Hex string, or raw bytes which are passed through.
        field: Name reported in the ValidationError.
        size: Required byte length, if any.
    """
    if isinstance(value, bytes):
        raw = value
    elif isinstance(value, str):
        body = strip_hex_prefix(value.strip())
        if len(body) % 2:
            raise ValidationError(f"{field} has an odd number of hex digits", field=field)
        try:
            raw = bytes.fromhex(body)
        except ValueError as err:
            raise ValidationError(f"{field} is not valid hex", field=field) from err
    else:
        raise ValidationError(f"{field} must be a hex string", field=field)

    if size is not None and len(raw) != size:
        raise ValidationError(
            f"{field} must be {size} bytes ({size * 2} hex chars), got {len(raw)} bytes",
            field=field,
        )
    return raw


def to_bytes32_hex(value: str | bytes, field: str = "commitment") -> str:
    """Normalise a 32-byte value to ``0x`` + 64 lowercase hex chars."""
    return "0x" + parse_hex(value, field, size=32).hex()


def is_zero(value: str | bytes) -> bool:
    raw = parse_hex(value, "value")
    return not any(raw)


def normalize_address(address: str, field: str = "address") -> str:
    """Return the EIP-55 checksummed form of ``address`` in any casing."""
    if not isinstance(address, str) or not is_address(address.lower()):
        raise ValidationError(f"{field} is not a valid address: {address!r}", field=field)
    return to_checksum_address(address.lower())


def commitments_match(vc_commitment: str | None, on_chain_commitment: str | None) -> bool:
    """Case- and prefix-insensitive comparison of two commitment strings.

    A missing commitment on either side never matches.
    """
    if not vc_commitment or not on_chain_commitment:
        return False
    left = strip_hex_prefix(vc_commitment.lower())
    right = strip_hex_prefix(on_chain_commitment.lower())
    return left == right


def deterministic_blinding(product_address: str, seller_address: str) -> str:
    """Derive the blinding factor seller and buyer both recompute for a product.

    Returns 64 hex chars without prefix:
    ``keccak256(encodePacked(address product, address seller))``.
    """
    if not product_address or not seller_address:
        raise ValidationError("product_address and seller_address are required")
    product = normalize_address(product_address, "product_address")
    seller = normalize_address(seller_address, "seller_address")
    return keccak(encode_packed(["address", "address"], [product, seller])).hex()


def reveal_commitment(value: int, blinding: str | bytes) -> str:
    """Commitment checked at delivery: ``keccak256(uint256 value ‖ bytes32 blinding)``."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_UINT256:
        raise ValidationError("value must be an unsigned 256-bit integer", field="value")
    blinding_bytes = parse_hex(blinding, "blinding", size=32)
    return "0x" + keccak(encode_packed(["uint256", "bytes32"], [value, blinding_bytes])).hex()
