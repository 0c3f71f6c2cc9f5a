# src/shopify_admin/client.py
# Admin GraphQL client:
#   execute(query, variables)             -> data | NetworkError | RemoteError | BusinessError
#   execute_with_retry(query, variables)  -> retries throttled calls with exponential backoff
#
# Stateless apart from the shop/token pair bound at construction, so one
# instance can be shared by every step of a run.

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from rate_limit.limiter import backoff_delay
from settings import ClientSettings

from .errors import BusinessError, NetworkError, RemoteError, RetryableError

logger = logging.getLogger(__name__)


class ShopifyClient:
    name = "shopify"

    def __init__(
        self,
        shop: str,
        access_token: str,
        *,
        api_version: str = "2026-01",
        timeout: float = 30.0,
        max_attempts: int = 3,
        http: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.shop = shop
        self.access_token = access_token
        self.api_version = api_version
        self.max_attempts = max_attempts
        self.http = http or httpx.Client(timeout=timeout)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: ClientSettings, **kwargs: Any) -> "ShopifyClient":
        return cls(
            cfg.shop,
            cfg.access_token,
            api_version=cfg.api_version,
            timeout=cfg.timeout,
            max_attempts=cfg.max_attempts,
            **kwargs,
        )

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}/graphql.json"

    @property
    def store_name(self) -> str:
        return self.shop.replace(".myshopify.com", "")

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Shopify-Access-Token": self.access_token,
        }

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": query}
        if variables is not None:
            body["variables"] = variables

        try:
            r = self.http.post(self.endpoint, json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            raise NetworkError(f"Shopify request failed: {exc}") from exc

        if not (200 <= r.status_code < 300):
            raise NetworkError(
                f"Shopify GraphQL request failed: {r.status_code} {r.reason_phrase}",
                status_code=r.status_code,
                body=r.text,
            )

        try:
            payload = r.json()
        except ValueError as exc:
            raise NetworkError("Shopify returned invalid JSON", r.status_code, r.text) from exc

        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [{"message": str(errors)}]
            err = RemoteError(errors)
            if err.is_throttled:
                raise RetryableError(errors)
            raise err

        data = payload.get("data")
        if not isinstance(data, dict):
            raise RemoteError([{"message": "response is missing data"}])

        for operation, result in data.items():
            if isinstance(result, dict) and result.get("userErrors"):
                raise BusinessError(operation, result["userErrors"])
        return data

    def execute_with_retry(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
    ) -> Dict[str, Any]:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {attempts}")
        for attempt in range(attempts):
            try:
                return self.execute(query, variables)
            except RetryableError:
                if attempt >= attempts - 1:
                    raise
                delay = backoff_delay(attempt)
                logger.info("throttled by Shopify, retrying in %.0fs (attempt %d/%d)",
                            delay, attempt + 1, attempts)
                self._sleep(delay)
