"""HttpProofBackend — client for the external Bulletproofs prover service.

Wire format:
    POST /zkp/generate-value-commitment-with-binding
        {"value": u64, "blinding_hex": "0x..", "binding_tag_hex": "0x.."}
        -> {"commitment": hex, "proof": hex, "verified": bool}
    POST /zkp/generate-value-commitment-with-blinding   (same, no tag)
    POST /zkp/verify-value-commitment
        {"commitment": hex, "proof": hex, "binding_tag_hex": "0x.."?}
        -> {"verified": bool}
    POST /zkp/commit-tx-hash
        {"tx_hash": "0x..", "binding_tag_hex": "0x.."?}
        -> {"commitment": hex, "proof": hex, "verified": bool}

The service answers 400 with {"error": msg} for malformed input; that is
surfaced as ValidationError. Transport errors are retried with tenacity
and become ProofServiceError once attempts are exhausted.
"""

from __future__ import annotations

from typing import Any

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from provenance_escrow.config import get_settings
from provenance_escrow.domain.commitments import strip_hex_prefix
from provenance_escrow.domain.exceptions import ProofServiceError, ValidationError
from provenance_escrow.domain.proof_protocol import ZKProof
from provenance_escrow.logging_config import get_logger

logger = get_logger(__name__)

GENERATE_BOUND_PATH = "/zkp/generate-value-commitment-with-binding"
GENERATE_UNBOUND_PATH = "/zkp/generate-value-commitment-with-blinding"
VERIFY_PATH = "/zkp/verify-value-commitment"
COMMIT_TX_HASH_PATH = "/zkp/commit-tx-hash"


class HttpProofBackend:
    """Proof backend that calls the prover service over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        retry_wait: float = 2.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize with optional overrides (defaults come from config).

        Args:
            base_url: Prover service root, e.g. http://localhost:5010.
            timeout: Per-request timeout in seconds.
            max_attempts: Attempts per call before giving up on transport errors.
            retry_wait: Base of the exponential backoff between attempts.
            client: Pre-built httpx client (tests pass one with a MockTransport).
        """
        settings = get_settings()
        self._base_url = (base_url or settings.zkp_backend_url).rstrip("/")
        self._max_attempts = max_attempts or settings.zkp_max_attempts
        self._retry_wait = retry_wait
        self._client = client or httpx.Client(
            base_url=self._base_url,
            timeout=timeout or settings.zkp_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def generate(self, value: int, blinding: bytes, binding_tag: bytes | None = None) -> ZKProof:
        body: dict[str, Any] = {"value": value, "blinding_hex": "0x" + blinding.hex()}
        path = GENERATE_UNBOUND_PATH
        if binding_tag is not None:
            body["binding_tag_hex"] = "0x" + binding_tag.hex()
            path = GENERATE_BOUND_PATH

        data = self._post(path, body)
        return ZKProof(
            commitment=self._hex_field(data, "commitment"),
            proof=self._hex_field(data, "proof"),
            binding_tag=binding_tag.hex() if binding_tag is not None else None,
            verified=bool(data.get("verified", False)),
        )

    def verify(self, commitment: bytes, proof: bytes, binding_tag: bytes | None = None) -> bool:
        body: dict[str, Any] = {"commitment": commitment.hex(), "proof": proof.hex()}
        if binding_tag is not None:
            body["binding_tag_hex"] = "0x" + binding_tag.hex()

        data = self._post(VERIFY_PATH, body)
        verified = data.get("verified")
        if not isinstance(verified, bool):
            raise ProofServiceError(f"Prover returned no 'verified' flag: {data!r}")
        return verified

    def commit_tx_hash(self, tx_hash: bytes, binding_tag: bytes | None = None) -> ZKProof:
        body: dict[str, Any] = {"tx_hash": "0x" + tx_hash.hex()}
        if binding_tag is not None:
            body["binding_tag_hex"] = "0x" + binding_tag.hex()

        data = self._post(COMMIT_TX_HASH_PATH, body)
        return ZKProof(
            commitment=self._hex_field(data, "commitment"),
            proof=self._hex_field(data, "proof"),
            binding_tag=binding_tag.hex() if binding_tag is not None else None,
            verified=bool(data.get("verified", False)),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, min=self._retry_wait, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            response = retrying(self._client.post, path, json=body)
        except httpx.TransportError as exc:
            logger.error("zkp_client.request_failed", path=path, error=str(exc))
            raise ProofServiceError(f"Prover unreachable at {self._base_url}: {exc}") from exc

        if 400 <= response.status_code < 500:
            message = self._error_message(response)
            logger.warning("zkp_client.rejected", path=path, status=response.status_code)
            raise ValidationError(f"Prover rejected input: {message}")
        if response.status_code >= 500:
            raise ProofServiceError(
                f"Prover error {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProofServiceError("Prover returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise ProofServiceError(f"Prover returned unexpected payload: {data!r}")
        return data

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text
        if isinstance(payload, dict) and "error" in payload:
            return str(payload["error"])
        return response.text

    @staticmethod
    def _hex_field(data: dict[str, Any], key: str) -> str:
        value = data.get(key)
        if not isinstance(value, str) or not value:
            raise ProofServiceError(f"Prover response missing '{key}'")
        return strip_hex_prefix(value).lower()
