# app/services/warcraftlogs_client.py
from __future__ import annotations

import hashlib
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import get_settings
from app.services.cache import CacheStore, InMemoryCacheStore

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "warcraftlogs.client_token"
RATE_LIMIT_CACHE_KEY = "warcraftlogs.rate_limited"
RATE_LIMIT_INFO_CACHE_KEY = "warcraftlogs.rate_limit"
RATE_LIMIT_COOLDOWN = 3600  # seconds


class TransportError(RuntimeError):
    """
    Raised when the Warcraft Logs API cannot be reached, returns a non-2xx
    status, or returns a body that is not the expected JSON.
    """


class GraphQLError(TransportError):
    """
    Raised when the API answers with a GraphQL ``errors`` array.
    """

    def __init__(self, errors: List[Dict[str, Any]], message: str = "GraphQL query failed") -> None:
        self.errors = errors
        first = errors[0].get("message") if errors else None
        super().__init__(f"{message}: {first or 'Unknown error'}")

    @property
    def first_error(self) -> Optional[str]:
        return self.errors[0].get("message") if self.errors else None

    def has_error_matching(self, pattern: str) -> bool:
        regex = re.compile(pattern, re.IGNORECASE)
        return any(regex.search(error.get("message") or "") for error in self.errors)


class RateLimitedError(TransportError):
    def __init__(
        self,
        message: str = "Warcraft Logs API rate limit exceeded. Requests are paused for one hour.",
    ) -> None:
        super().__init__(message)


class PartitionNotFoundError(LookupError):
    """
    Raised when the remote source reports that a guild or guild tag does not
    exist.
    """


class WarcraftLogsClient:
    """
    Minimal Warcraft Logs v2 GraphQL client using the client-credentials flow.

    Responsibilities
    ----------------
    - Fetch and cache an access token (TTL = the token's reported expiry).
    - Execute GraphQL queries, caching ``data`` by a hash of query+variables.
    - Honour the API rate limit: a 429 pauses all requests for one hour.

    Notes
    -----
    - ``fresh()`` makes exactly the next ``query`` call skip the cache read.
      The fresh response is still written back to the cache.
    - No retries are performed; errors propagate to the caller.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_url: str = "https://www.warcraftlogs.com/api/v2/client",
        token_url: str = "https://www.warcraftlogs.com/oauth/token",
        cache: Optional[CacheStore] = None,
        default_ttl: float = 43200,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("client_id and client_secret are required")

        self._client_id = client_id
        self._client_secret = client_secret
        self._api_url = api_url
        self._token_url = token_url
        self._timeout_seconds = timeout_seconds

        self.cache: CacheStore = cache if cache is not None else InMemoryCacheStore()
        self.default_ttl = default_ttl

        self._fresh_next = False

    def fresh(self) -> "WarcraftLogsClient":
        """
        Bypass the response cache for the next query only.
        """
        self._fresh_next = True
        return self

    @staticmethod
    def cache_key(query: str, variables: Dict[str, Any]) -> str:
        raw = json.dumps({"query": query, "variables": variables}, sort_keys=True, default=str)
        return "warcraftlogs.query." + hashlib.sha256(raw.encode("utf-8")).hexdigest()

    async def _fetch_token(self) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(
                self._token_url,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )

        if resp.status_code // 100 != 2:
            raise TransportError(
                f"Failed to obtain Warcraft Logs token (status={resp.status_code}): {resp.text}"
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportError("Token response from Warcraft Logs is not valid JSON") from exc

        if not payload.get("access_token") or not isinstance(payload.get("expires_in"), (int, float)):
            raise TransportError(
                "Invalid token response from Warcraft Logs (missing access_token/expires_in)"
            )

        return payload

    async def get_access_token(self) -> str:
        """
        Return a valid access token, using the cached one while it lives.
        """
        token = self.cache.get(TOKEN_CACHE_KEY)
        if token is not None:
            return token

        payload = await self._fetch_token()
        self.cache.set(TOKEN_CACHE_KEY, payload["access_token"], payload["expires_in"])
        return payload["access_token"]

    def _ensure_not_rate_limited(self) -> None:
        if self.cache.has(RATE_LIMIT_CACHE_KEY):
            raise RateLimitedError()

    def _activate_rate_limit_cooldown(self) -> None:
        self.cache.set(RATE_LIMIT_CACHE_KEY, True, RATE_LIMIT_COOLDOWN)
        logger.warning("Warcraft Logs API rate limit exceeded. Pausing requests for one hour.")

    def _track_rate_limit_headers(self, resp: httpx.Response) -> None:
        limit_header = resp.headers.get("x-ratelimit-limit")
        remaining_header = resp.headers.get("x-ratelimit-remaining")
        if not limit_header or not remaining_header:
            return

        try:
            limit = int(float(limit_header))
            remaining = int(float(remaining_header))
        except ValueError:
            return

        self.cache.set(
            RATE_LIMIT_INFO_CACHE_KEY,
            {"limit": limit, "remaining": remaining},
            RATE_LIMIT_COOLDOWN,
        )

        if limit > 0 and remaining <= math.ceil(limit * 0.1):
            logger.warning(
                "Warcraft Logs API rate limit tokens running low (remaining=%s, limit=%s).",
                remaining,
                limit,
            )

    async def query(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        ttl: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Execute a GraphQL query and return its ``data`` object.

        Raises
        ------
        RateLimitedError
            While the one-hour cooldown is active, or when the API answers 429.
        GraphQLError
            When the response carries GraphQL errors.
        TransportError
            On any other non-2xx status or malformed body.
        """
        variables = variables or {}
        key = self.cache_key(query, variables)
        ttl = self.default_ttl if ttl is None else ttl

        use_cache = not self._fresh_next
        self._fresh_next = False

        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        self._ensure_not_rate_limited()
        token = await self.get_access_token()

        logger.debug("Warcraft Logs query cache miss (key=%s)", key)

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(
                self._api_url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
                json={"query": query, "variables": variables},
            )

        self._track_rate_limit_headers(resp)

        if resp.status_code == 429:
            self._activate_rate_limit_cooldown()
            raise RateLimitedError()

        if resp.status_code // 100 != 2:
            raise TransportError(
                f"Warcraft Logs query failed (status={resp.status_code}): {resp.text}"
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TransportError("Warcraft Logs response is not valid JSON") from exc

        if not isinstance(payload, dict):
            raise TransportError("Warcraft Logs response is not a JSON object")

        if payload.get("errors"):
            raise GraphQLError(payload["errors"])

        data = payload.get("data")
        if not isinstance(data, dict):
            raise TransportError("Warcraft Logs response has no data object")

        self.cache.set(key, data, ttl)
        return data


# Simple singleton-style accessor wired to app settings
_client_instance: Optional[WarcraftLogsClient] = None


def get_warcraftlogs_client() -> WarcraftLogsClient:
    """
    Lazily construct a WarcraftLogsClient instance using application settings.
    """
    global _client_instance
    if _client_instance is None:
        settings = get_settings()
        if not settings.WCL_CLIENT_ID or not settings.WCL_CLIENT_SECRET:
            raise TransportError(
                "WCL_CLIENT_ID and WCL_CLIENT_SECRET must be configured in settings "
                "to use the shared Warcraft Logs client."
            )
        _client_instance = WarcraftLogsClient(
            client_id=settings.WCL_CLIENT_ID,
            client_secret=settings.WCL_CLIENT_SECRET,
            api_url=settings.WCL_API_URL,
            token_url=settings.WCL_TOKEN_URL,
            default_ttl=settings.ATTENDANCE_CACHE_TTL,
        )
    return _client_instance
