"""Tests for the SimulatedProofBackend."""

from __future__ import annotations

import pytest
from eth_abi.packed import encode_packed
from eth_utils import keccak

from provenance_escrow.domain.exceptions import ValidationError
from provenance_escrow.domain.proof_protocol import ProofBackend
from provenance_escrow.provers.simulated import SimulatedProofBackend

BLINDING = bytes.fromhex("42" * 32)
TAG = bytes.fromhex("07" * 32)


class TestSimulatedBackend:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(SimulatedProofBackend(), ProofBackend)

    def test_commitment_opens_to_value(self) -> None:
        record = SimulatedProofBackend().generate(500, BLINDING, TAG)
        expected = keccak(encode_packed(["uint256", "bytes32"], [500, BLINDING])).hex()
        assert record.commitment == expected
        assert record.binding_tag == TAG.hex()
        assert record.verified is True

    def test_proof_is_64_bytes(self) -> None:
        record = SimulatedProofBackend().generate(1, BLINDING)
        assert len(bytes.fromhex(record.proof)) == 64

    def test_deterministic(self) -> None:
        backend = SimulatedProofBackend()
        assert backend.generate(1, BLINDING, TAG) == backend.generate(1, BLINDING, TAG)

    def test_secret_separates_backends(self) -> None:
        record = SimulatedProofBackend(secret="a").generate(1, BLINDING, TAG)
        other = SimulatedProofBackend(secret="b")
        assert not other.verify(
            bytes.fromhex(record.commitment), bytes.fromhex(record.proof), TAG
        )

    def test_verify_respects_tag(self) -> None:
        backend = SimulatedProofBackend()
        record = backend.generate(1, BLINDING, TAG)
        commitment = bytes.fromhex(record.commitment)
        proof = bytes.fromhex(record.proof)
        assert backend.verify(commitment, proof, TAG)
        assert not backend.verify(commitment, proof, None)
        assert not backend.verify(commitment, proof, bytes(32))

    def test_value_over_u64_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SimulatedProofBackend().generate(2**64, BLINDING)

    def test_tx_hash_commitment_hides_hash(self) -> None:
        tx_hash = bytes.fromhex("aa" * 32)
        record = SimulatedProofBackend().commit_tx_hash(tx_hash, TAG)
        assert record.commitment != tx_hash.hex()
        assert record.is_bound
        assert record.to_dict()["binding_tag"] == TAG.hex()
