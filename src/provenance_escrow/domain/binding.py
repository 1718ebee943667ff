"""CommitmentBinder — derives the binding tag that pins a proof to its context.

A value-commitment proof is only meaningful for one chain, one escrow, one
product and one lifecycle stage. The binding tag is folded into the proof
transcript, so a proof lifted from a different context fails verification.

Tag derivation (Solidity ``abi.encodePacked`` layout, then keccak256):

    string  protocol_version   "zkp-bind-v1", or "zkp-bind-v2" when chained
    uint256 chain_id           32 bytes big-endian
    address escrow_address     20 bytes
    uint256 product_id         32 bytes big-endian
    uint8   stage              1 byte
    string  schema_version     raw UTF-8
    string  previous_vc_cid    raw UTF-8, v2 only

The tag is returned as 64 lowercase hex characters without a prefix.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from eth_abi.packed import encode_packed
from eth_utils import keccak

from provenance_escrow.domain.commitments import (
    MAX_UINT256,
    normalize_address,
    strip_hex_prefix,
)
from provenance_escrow.domain.enums import Stage
from provenance_escrow.domain.exceptions import ValidationError
from provenance_escrow.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEMA_VERSION = "1.0"
PROTOCOL_V1 = "zkp-bind-v1"
PROTOCOL_V2 = "zkp-bind-v2"
TX_HASH_PROTOCOL = "tx-hash-bind-v1"

_V1_TYPES = ["string", "uint256", "address", "uint256", "uint8", "string"]
_V2_TYPES = [*_V1_TYPES, "string"]
_TX_HASH_TYPES = ["string", "uint256", "address", "uint256", "address"]

# Accepted spellings when a context arrives as a loose mapping (JSON bodies, VCs).
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "chain_id": ("chain_id", "chainId"),
    "escrow_address": ("escrow_address", "escrowAddr", "escrowAddress"),
    "product_id": ("product_id", "productId"),
    "stage": ("stage",),
    "schema_version": ("schema_version", "schemaVersion"),
    "previous_vc_cid": ("previous_vc_cid", "previousVCCid", "previousVcCid"),
}
_REQUIRED = ("chain_id", "escrow_address", "product_id", "stage")


def _as_uint256(value: Any, field: str, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}", field=field)
    if not minimum <= value <= MAX_UINT256:
        raise ValidationError(f"{field} out of range: {value}", field=field)
    return value


def _as_stage(value: Any) -> Stage:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"stage must be 0, 1 or 2, got {value!r}", field="stage")
    try:
        return Stage(value)
    except ValueError as err:
        raise ValidationError(f"stage must be 0, 1 or 2, got {value}", field="stage") from err


@dataclass(frozen=True)
class BindingContext:
    """The six fields a binding tag commits to.

    Values are validated and normalised on construction, so two contexts
    that differ only in address casing compare equal and hash to the same tag.
    """

    chain_id: int
    escrow_address: str
    product_id: int
    stage: Stage
    schema_version: str = DEFAULT_SCHEMA_VERSION
    previous_vc_cid: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "chain_id", _as_uint256(self.chain_id, "chain_id", minimum=1))
        object.__setattr__(
            self, "escrow_address", normalize_address(self.escrow_address, "escrow_address")
        )
        object.__setattr__(self, "product_id", _as_uint256(self.product_id, "product_id"))
        object.__setattr__(self, "stage", _as_stage(self.stage))

        if self.schema_version is None:
            object.__setattr__(self, "schema_version", DEFAULT_SCHEMA_VERSION)
        elif not isinstance(self.schema_version, str) or not self.schema_version:
            raise ValidationError(
                "schema_version must be a non-empty string", field="schema_version"
            )

        if self.previous_vc_cid is not None and not isinstance(self.previous_vc_cid, str):
            raise ValidationError("previous_vc_cid must be a string", field="previous_vc_cid")
        if self.previous_vc_cid == "":
            object.__setattr__(self, "previous_vc_cid", None)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BindingContext:
        """Build a context from a dict using snake_case or camelCase keys.

        Raises:
            ValidationError: naming the first required field that is missing.
        """
        resolved: dict[str, Any] = {}
        for name, aliases in _FIELD_ALIASES.items():
            for alias in aliases:
                if data.get(alias) is not None:
                    resolved[name] = data[alias]
                    break

        for name in _REQUIRED:
            if name not in resolved:
                raise ValidationError(
                    f"{name} is required for binding tag generation", field=name
                )
        return cls(**resolved)

    @property
    def protocol_version(self) -> str:
        return PROTOCOL_V2 if self.previous_vc_cid else PROTOCOL_V1

    def packed(self) -> bytes:
        """Return the exact byte string that is hashed into the tag."""
        values: list[Any] = [
            self.protocol_version,
            self.chain_id,
            self.escrow_address,
            self.product_id,
            int(self.stage),
            self.schema_version,
        ]
        if self.previous_vc_cid:
            return encode_packed(_V2_TYPES, [*values, self.previous_vc_cid])
        return encode_packed(_V1_TYPES, values)


def generate_binding_tag(context: BindingContext | Mapping[str, Any]) -> str:
    """Derive the 32-byte binding tag for ``context`` as 64 hex chars."""
    if not isinstance(context, BindingContext):
        context = BindingContext.from_mapping(context)
    return keccak(context.packed()).hex()


def tx_hash_binding_tag(
    chain_id: int,
    escrow_address: str,
    product_id: int,
    buyer_address: str,
) -> str:
    """Tag linking the purchase and delivery tx-hash commitments of one buyer."""
    values = [
        TX_HASH_PROTOCOL,
        _as_uint256(chain_id, "chain_id", minimum=1),
        normalize_address(escrow_address, "escrow_address"),
        _as_uint256(product_id, "product_id"),
        normalize_address(buyer_address, "buyer_address"),
    ]
    return keccak(encode_packed(_TX_HASH_TYPES, values)).hex()


def binding_tags_match(tag_a: str | None, tag_b: str | None) -> bool:
    """True when both tags are present and equal ignoring case and prefix."""
    if not tag_a or not tag_b:
        return False
    return strip_hex_prefix(tag_a.lower()) == strip_hex_prefix(tag_b.lower())


class CommitmentBinder:
    """Binding tag generator preconfigured for one chain and schema version.

    Usage:
        binder = CommitmentBinder(chain_id=11155111)
        tag = binder.tag_for(escrow.address, escrow.product_id, Stage.LISTING)
    """

    def __init__(
        self,
        chain_id: int,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
    ) -> None:
        self._chain_id = _as_uint256(chain_id, "chain_id", minimum=1)
        if not isinstance(schema_version, str) or not schema_version:
            raise ValidationError(
                "schema_version must be a non-empty string", field="schema_version"
            )
        self._schema_version = schema_version

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def context_for(
        self,
        escrow_address: str,
        product_id: int,
        stage: Stage | int,
        previous_vc_cid: str | None = None,
    ) -> BindingContext:
        return BindingContext(
            chain_id=self._chain_id,
            escrow_address=escrow_address,
            product_id=product_id,
            stage=stage,
            schema_version=self._schema_version,
            previous_vc_cid=previous_vc_cid,
        )

    def tag_for(
        self,
        escrow_address: str,
        product_id: int,
        stage: Stage | int,
        previous_vc_cid: str | None = None,
    ) -> str:
        """Return the binding tag for a stage of one escrow."""
        context = self.context_for(escrow_address, product_id, stage, previous_vc_cid)
        tag = generate_binding_tag(context)
        logger.debug(
            "binder.tag_derived",
            escrow=context.escrow_address,
            product_id=context.product_id,
            stage=context.stage.name,
            protocol=context.protocol_version,
        )
        return tag

    def tx_hash_tag_for(self, escrow_address: str, product_id: int, buyer_address: str) -> str:
        return tx_hash_binding_tag(self._chain_id, escrow_address, product_id, buyer_address)
