# src/launchpad/api/security.py
"""Abuse controls for the public API: body size caps and per-client rate limits.

Both are single-process backstops. A deployment with several API replicas
enforces the same limits at its edge proxy as well.
"""

from __future__ import annotations

import ipaddress
import os
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from launchpad.api.errors import ApiError
from launchpad.env import env_flag, env_int

IpNet = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

_MUTATING = {"POST", "PUT", "PATCH", "DELETE"}
_ALWAYS_EXEMPT = ("/docs", "/openapi.json", "/v1/health")


def _parse_ip(raw: str) -> Optional[str]:
    try:
        return str(ipaddress.ip_address(raw.strip()))
    except ValueError:
        return None


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content=ApiError(status, code, message).to_json())


# ---------------------------------------------------------------------------
# Client identity for rate limiting
# ---------------------------------------------------------------------------


class ClientIpResolver:
    """Decides which address a request is rate-limited under.

    Forwarding headers are honored only with LAUNCHPAD_TRUST_PROXY_HEADERS=1,
    and then only from a peer inside LAUNCHPAD_TRUSTED_PROXY_IPS (comma list
    of IPs or CIDRs). With no allowlist the headers are honored outside prod
    and ignored in prod. The result is never used for authorization.
    """

    def __init__(self) -> None:
        self.trust_headers = env_flag("LAUNCHPAD_TRUST_PROXY_HEADERS")
        self.mode = (os.environ.get("LAUNCHPAD_MODE") or "prod").strip().lower()
        self.proxies: List[IpNet] = []
        raw = (os.environ.get("LAUNCHPAD_TRUSTED_PROXY_IPS") or "").strip()
        for part in [p.strip() for p in raw.split(",") if p.strip()][:64]:
            try:
                self.proxies.append(ipaddress.ip_network(part, strict=False))
            except ValueError:
                continue
        self._allowlist_set = bool(raw)

    def _peer(self, request: Request) -> Optional[str]:
        return _parse_ip(str(request.client.host)) if request.client and request.client.host else None

    def _peer_is_trusted_proxy(self, peer: Optional[str]) -> bool:
        if not self._allowlist_set:
            return self.mode != "prod"
        if peer is None:
            return False
        ip = ipaddress.ip_address(peer)
        return any(ip in net for net in self.proxies)

    def resolve(self, request: Request) -> str:
        peer = self._peer(request)
        if self.trust_headers and self._peer_is_trusted_proxy(peer):
            for hdr in ("cf-connecting-ip", "x-real-ip"):
                ip = _parse_ip(request.headers.get(hdr) or "")
                if ip:
                    return ip
            # Left-most X-Forwarded-For entry is the original client.
            xff = request.headers.get("x-forwarded-for") or ""
            ip = _parse_ip(xff.split(",")[0]) if xff else None
            if ip:
                return ip
        return peer or "unknown"


# ---------------------------------------------------------------------------
# Body size
# ---------------------------------------------------------------------------


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects oversized bodies with 413 request_too_large.

    Checks Content-Length first, then the buffered body of mutating requests.
    A creation body grows with its wallet list, so the cap
    (LAUNCHPAD_MAX_REQUEST_BYTES, default 64000) bounds that list too.
    LAUNCHPAD_SIZE_LIMIT_DISABLE=1 turns the check off.
    """

    def __init__(self, app, *, max_bytes: Optional[int] = None, exempt_prefixes: Tuple[str, ...] = _ALWAYS_EXEMPT):
        super().__init__(app)
        self._enabled = not env_flag("LAUNCHPAD_SIZE_LIMIT_DISABLE")
        self._max_bytes = int(max_bytes) if max_bytes is not None else env_int("LAUNCHPAD_MAX_REQUEST_BYTES", 64_000)
        self._exempt_prefixes = exempt_prefixes

    def _declared_too_large(self, request: Request) -> bool:
        try:
            return int(request.headers.get("content-length") or 0) > self._max_bytes
        except ValueError:
            return False

    async def dispatch(self, request: Request, call_next):
        if not self._enabled or (request.url.path or "").startswith(self._exempt_prefixes):
            return await call_next(request)

        too_large = self._declared_too_large(request)
        if not too_large and (request.method or "").upper() in _MUTATING:
            too_large = len(await request.body()) > self._max_bytes

        if too_large:
            return _error(413, "request_too_large", f"request body exceeds {self._max_bytes} bytes")
        return await call_next(request)


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenBucket:
    name: str
    rate_per_sec: float
    burst: float


def _bucket_from_env(name: str, prefix: str, rate: int, burst: int) -> TokenBucket:
    return TokenBucket(
        name=name,
        rate_per_sec=float(env_int(f"{prefix}_PER_SEC", rate)),
        burst=float(env_int(f"{prefix}_BURST", burst)),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client token buckets, returning 429 rate_limited when empty.

    Three classes of traffic, each with its own bucket per client:
      - create: POST /v1/factory/tokens (LAUNCHPAD_RL_CREATE_PER_SEC / _BURST)
      - write:  any other mutating call (LAUNCHPAD_RL_WRITE_PER_SEC / _BURST)
      - read:   everything else (LAUNCHPAD_RL_READ_PER_SEC / _BURST)

    Idle buckets are evicted after LAUNCHPAD_RL_TTL_S and the table is capped
    at LAUNCHPAD_RL_MAX_KEYS (oldest first), checked every
    LAUNCHPAD_RL_PRUNE_EVERY requests.
    """

    CREATE_PATH = "/v1/factory/tokens"

    def __init__(
        self,
        app,
        *,
        ttl_s: Optional[int] = None,
        max_keys: Optional[int] = None,
        prune_every: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = _ALWAYS_EXEMPT,
    ):
        super().__init__(app)
        self._create = _bucket_from_env("create", "LAUNCHPAD_RL_CREATE", 1, 5)
        self._write = _bucket_from_env("write", "LAUNCHPAD_RL_WRITE", 4, 20)
        self._read = _bucket_from_env("read", "LAUNCHPAD_RL_READ", 12, 40)
        self._exempt_prefixes = exempt_prefixes
        self._resolver = ClientIpResolver()

        self._ttl_s = int(ttl_s) if ttl_s is not None else env_int("LAUNCHPAD_RL_TTL_S", 900)
        self._max_keys = int(max_keys) if max_keys is not None else env_int("LAUNCHPAD_RL_MAX_KEYS", 20_000)
        self._prune_every = max(1, int(prune_every) if prune_every is not None else env_int("LAUNCHPAD_RL_PRUNE_EVERY", 256))
        self._req_count = 0

        # "<ip>:<bucket name>" -> (tokens_remaining, last_refill_ts, last_seen_ts)
        self._buckets: Dict[str, Tuple[float, float, float]] = {}

    def _pick_bucket(self, request: Request) -> TokenBucket:
        if (request.method or "").upper() not in _MUTATING:
            return self._read
        if (request.url.path or "").rstrip("/") == self.CREATE_PATH:
            return self._create
        return self._write

    def _prune(self, now: float) -> None:
        if self._ttl_s > 0:
            cutoff = now - float(self._ttl_s)
            for k in [k for k, v in self._buckets.items() if v[2] < cutoff]:
                del self._buckets[k]

        overflow = len(self._buckets) - self._max_keys
        if self._max_keys > 0 and overflow > 0:
            oldest = sorted(self._buckets, key=lambda k: self._buckets[k][2])[:overflow]
            for k in oldest:
                del self._buckets[k]

    def _take(self, key: str, bucket: TokenBucket, now: float) -> bool:
        tokens, last, _ = self._buckets.get(key, (bucket.burst, now, now))
        tokens = min(bucket.burst, tokens + (now - last) * bucket.rate_per_sec)
        allowed = tokens >= 1.0
        self._buckets[key] = (tokens - 1.0 if allowed else tokens, now, now)
        return allowed

    async def dispatch(self, request: Request, call_next):
        if (request.url.path or "").startswith(self._exempt_prefixes):
            return await call_next(request)

        now = time.time()
        self._req_count += 1
        if self._req_count % self._prune_every == 0:
            self._prune(now)

        bucket = self._pick_bucket(request)
        allowed = self._take(f"{self._resolver.resolve(request)}:{bucket.name}", bucket, now)

        # Enforce the cap right away so an insert never leaves overflow behind.
        if self._max_keys > 0 and len(self._buckets) > self._max_keys:
            self._prune(now)

        if not allowed:
            return _error(429, "rate_limited", f"too many {bucket.name} requests")
        return await call_next(request)
