"""Content-addressed storage for Verifiable Credentials.

Stores:
    - InMemoryContentStore: process-local, ``"Qm" + keccak256(content)[:16 bytes]``
    - PinataContentStore:   pins through the Pinata API, reads through an IPFS gateway
    - CachedContentStore:   read-through cache in front of any store, backed by
                            a bounded in-process LRU or by Redis

Content is immutable per address, so a cached read always returns the
same bytes as an uncached one. Caches only ever hold what the underlying
store returned.
"""

from __future__ import annotations

import json
import threading
from collections import OrderedDict
from typing import Any, Protocol, runtime_checkable

import httpx
from eth_utils import keccak
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from provenance_escrow.config import Settings, get_settings
from provenance_escrow.domain.exceptions import (
    ContentNotFoundError,
    ContentStoreError,
    ValidationError,
)
from provenance_escrow.logging_config import get_logger

logger = get_logger(__name__)


def canonical_json(document: Any) -> bytes:
    """Serialize ``document`` with sorted keys and no insignificant whitespace."""
    return json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")


def content_address(content: bytes) -> str:
    return "Qm" + keccak(content).hex()[:32]


@runtime_checkable
class ContentStore(Protocol):
    """Anything that can put bytes and get them back by address."""

    def put(self, content: bytes) -> str: ...

    def get(self, cid: str) -> bytes: ...


class Cache(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class InMemoryContentStore:
    """Process-local content store."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, content: bytes) -> str:
        cid = content_address(content)
        with self._lock:
            self._blobs[cid] = bytes(content)
        return cid

    def get(self, cid: str) -> bytes:
        with self._lock:
            content = self._blobs.get(cid)
        if content is None:
            raise ContentNotFoundError(cid)
        return content

    def __contains__(self, cid: object) -> bool:
        return cid in self._blobs


class PinataContentStore:
    """IPFS store that pins through Pinata and reads through a gateway."""

    def __init__(
        self,
        jwt: str | None = None,
        api_url: str | None = None,
        gateway_url: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        settings = get_settings()
        self._jwt = jwt if jwt is not None else settings.pinata_jwt
        self._api_url = (api_url or settings.pinata_api_url).rstrip("/")
        self._gateway_url = (gateway_url or settings.ipfs_gateway_url).rstrip("/")
        self._client = client or httpx.Client(timeout=30.0)

    def put(self, content: bytes) -> str:
        if not self._jwt:
            raise ContentStoreError("Pinata JWT is not configured")
        response = self._client.post(
            f"{self._api_url}/pinning/pinFileToIPFS",
            headers={"Authorization": f"Bearer {self._jwt}"},
            files={"file": ("vc.json", content, "application/json")},
        )
        if response.status_code != 200:
            raise ContentStoreError(
                f"Pinata upload failed: {response.text}", status_code=response.status_code
            )
        cid = response.json().get("IpfsHash")
        if not cid:
            raise ContentStoreError("Pinata response carried no IpfsHash")
        logger.info("vc_store.pinned", cid=cid, size=len(content))
        return cid

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def get(self, cid: str) -> bytes:
        response = self._client.get(f"{self._gateway_url}/{cid}")
        if response.status_code == 404:
            raise ContentNotFoundError(cid)
        if response.status_code != 200:
            raise ContentStoreError(
                f"Gateway returned {response.status_code} for {cid}",
                status_code=response.status_code,
            )
        return response.content


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class MemoryCache:
    """In-process LRU cache keyed by cid, holding at most ``max_entries`` blobs."""

    def __init__(self, max_entries: int | None = None) -> None:
        capacity = max_entries if max_entries is not None else get_settings().vc_cache_max_entries
        if capacity <= 0:
            raise ValidationError("max_entries must be positive", field="max_entries")
        self._max_entries = capacity
        self._entries: OrderedDict[str, bytes] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("vc_store.cache_evicted", cid=evicted)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Cache entries in Redis under ``vc:<cid>`` with a TTL."""

    def __init__(self, client: Any, ttl_seconds: int | None = None) -> None:
        self._client = client
        self._ttl = ttl_seconds or get_settings().vc_cache_ttl_seconds

    def get(self, key: str) -> bytes | None:
        value = self._client.get(f"vc:{key}")
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    def set(self, key: str, value: bytes) -> None:
        self._client.set(f"vc:{key}", value, ex=self._ttl)


class CachedContentStore:
    """Read-through cache in front of another store."""

    def __init__(self, store: ContentStore, cache: Cache | None = None) -> None:
        self._store = store
        self._cache: Cache = cache if cache is not None else MemoryCache()

    @property
    def backing(self) -> ContentStore:
        return self._store

    @property
    def cache(self) -> Cache:
        return self._cache

    def put(self, content: bytes) -> str:
        cid = self._store.put(content)
        self._cache.set(cid, bytes(content))
        return cid

    def get(self, cid: str) -> bytes:
        cached = self._cache.get(cid)
        if cached is not None:
            logger.debug("vc_store.cache_hit", cid=cid)
            return cached
        content = self._store.get(cid)
        self._cache.set(cid, content)
        logger.debug("vc_store.cache_miss", cid=cid)
        return content


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def put_json(store: ContentStore, document: Any) -> str:
    """Store a JSON document and return its address."""
    return store.put(canonical_json(document))


def get_json(store: ContentStore, cid: str) -> Any:
    """Fetch and decode a JSON document."""
    content = store.get(cid)
    try:
        return json.loads(content)
    except ValueError as exc:
        raise ContentStoreError(f"Content at {cid} is not JSON") from exc


def build_content_store(settings: Settings | None = None) -> CachedContentStore:
    """Assemble the store configured in settings.

    Pinata backs the store when a JWT is configured, otherwise an in-memory
    store does. Reads go through Redis when ``vc_cache_backend`` is "redis"
    and the client was initialised at startup; if it was not, the in-process
    LRU cache is used instead.
    """
    settings = settings or get_settings()
    base: ContentStore
    if settings.uses_pinata:
        base = PinataContentStore(
            jwt=settings.pinata_jwt,
            api_url=settings.pinata_api_url,
            gateway_url=settings.ipfs_gateway_url,
        )
    else:
        base = InMemoryContentStore()

    cache: Cache = MemoryCache(settings.vc_cache_max_entries)
    if settings.vc_cache_backend == "redis":
        from provenance_escrow.infrastructure.redis_client import get_redis

        try:
            cache = RedisCache(get_redis(), ttl_seconds=settings.vc_cache_ttl_seconds)
        except RuntimeError as exc:
            logger.warning("vc_store.redis_unavailable", error=str(exc))

    logger.info(
        "vc_store.built",
        store=type(base).__name__,
        cache=type(cache).__name__,
    )
    return CachedContentStore(base, cache)
