"""Verifiable Credential storage routes.

Routes:
    POST   /api/v1/vcs          — Store a VC document, returns its content address
    GET    /api/v1/vcs/{cid}    — Fetch a stored VC document
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from provenance_escrow.api.deps import get_content_store
from provenance_escrow.infrastructure.vc_store import CachedContentStore, get_json, put_json
from provenance_escrow.logging_config import get_logger
from provenance_escrow.schemas.escrow import VcStoredResponse

router = APIRouter(prefix="/api/v1", tags=["VCs"])
logger = get_logger(__name__)


@router.post("/vcs", response_model=VcStoredResponse, status_code=201, summary="Store a VC")
def store_vc(
    document: dict[str, Any] = Body(..., examples=[{"credentialSubject": {"productId": 1}}]),
    store: CachedContentStore = Depends(get_content_store),
) -> VcStoredResponse:
    cid = put_json(store, document)
    logger.info("vc.stored", cid=cid)
    return VcStoredResponse(cid=cid)


@router.get("/vcs/{cid}", summary="Fetch a VC")
def fetch_vc(
    cid: str,
    store: CachedContentStore = Depends(get_content_store),
) -> Any:
    return get_json(store, cid)
