"""HTTP client for the settlement source API.

Retry policy for every request:
  * 401/403 raise ``SettlementSourceAuthError`` immediately.
  * 5xx responses and timeouts are retried up to ``max_api_retries`` times,
    sleeping ``retry_delay_seconds * (attempt + 1)`` between attempts.
  * Any other non-2xx response raises ``SettlementSourceError`` immediately.
"""

from __future__ import annotations

import time
from datetime import date
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.constants import Environment
from deposit_reconciler.core.exceptions import (
    ConfigurationError,
    SettlementSourceAuthError,
    SettlementSourceError,
)
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.schemas.source import (
    SourceSettlement,
    SourceSettlementDetail,
    SourceSettlementList,
)

logger = get_logger(__name__)


class SettlementSourceClient:
    """Blocking client for one set of settlement source credentials."""

    def __init__(
        self,
        username: str,
        password: str,
        config: Settings,
        environment: str = Environment.PRODUCTION.value,
        merchant_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not username or not password:
            raise ConfigurationError("Settlement API credentials are not configured")

        self.config = config
        self.merchant_id = merchant_id
        self.customer_id = customer_id
        self.sleep = sleep
        self.base_url = (
            config.settlement_api_uat_url
            if environment == Environment.UAT.value
            else config.settlement_api_production_url
        )
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=httpx.BasicAuth(username, password),
            headers={"Accept": "application/json"},
            timeout=config.settlement_api_timeout_seconds,
            transport=transport,
        )

    @classmethod
    def for_configuration(cls, configuration, config: Settings, **kwargs) -> "SettlementSourceClient":
        """Build a client from a ``ReconciliationConfiguration`` row."""
        return cls(
            username=configuration.api_username,
            password=configuration.api_password,
            config=config,
            environment=configuration.environment,
            merchant_id=configuration.merchant_id,
            customer_id=configuration.customer_id,
            **kwargs,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SettlementSourceClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ── Public API ───────────────────────────────────────────────────

    def list_settlements(self, date_from: date, date_to: date) -> list[SourceSettlement]:
        """Settlements in ``[date_from, date_to]`` for the configured account."""
        params: dict[str, str] = {
            "settlementDateStart": date_from.strftime("%Y-%m-%d"),
            "settlementDateEnd": date_to.strftime("%Y-%m-%d"),
        }
        if self.customer_id:
            params["customerId"] = self.customer_id
        elif self.merchant_id:
            params["merchantId"] = self.merchant_id
        else:
            raise ConfigurationError(
                "Either a customer id or a merchant id is required to list settlements"
            )

        payload = self._request("/settlements", params=params)
        try:
            settlements = SourceSettlementList.model_validate(payload).settlements
        except ValidationError as exc:
            raise SettlementSourceError(f"Malformed settlement list: {exc}") from exc

        logger.info(
            "Listed %d settlements for %s..%s", len(settlements), date_from, date_to
        )
        return settlements

    def get_settlement_detail(self, external_id: str) -> SourceSettlementDetail:
        """Settlement header and transaction lines for one settlement."""
        payload = self._request(f"/settlements/{external_id}")
        try:
            return SourceSettlementDetail.model_validate(payload)
        except ValidationError as exc:
            raise SettlementSourceError(
                f"Malformed settlement detail for {external_id}: {exc}"
            ) from exc

    # ── Private helpers ──────────────────────────────────────────────

    def _request(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        max_retries = self.config.max_api_retries

        for attempt in range(max_retries + 1):
            try:
                response = self._client.get(path, params=params)
            except httpx.TimeoutException as exc:
                if attempt < max_retries:
                    self._backoff(attempt, f"timeout ({type(exc).__name__})", path)
                    continue
                raise SettlementSourceError(
                    f"API request failed: timed out after {attempt + 1} attempts"
                ) from exc
            except httpx.TransportError as exc:
                raise SettlementSourceError(f"API request failed: {exc}") from exc

            status = response.status_code
            if 200 <= status < 300:
                try:
                    return response.json()
                except ValueError as exc:
                    raise SettlementSourceError(
                        f"API returned invalid JSON for {path}", status
                    ) from exc

            if status in (401, 403):
                raise SettlementSourceAuthError("API authentication failed", status)

            if status >= 500 and attempt < max_retries:
                self._backoff(attempt, f"HTTP {status}", path)
                continue

            raise SettlementSourceError(
                f"API request failed: HTTP {status} - {response.text[:200]}", status
            )

        raise SettlementSourceError("API request failed: retries exhausted")

    def _backoff(self, attempt: int, cause: str, path: str) -> None:
        delay = self.config.retry_delay_seconds * (attempt + 1)
        logger.warning(
            "%s on %s (attempt %d/%d), retrying in %.1fs",
            cause,
            path,
            attempt + 1,
            self.config.max_api_retries + 1,
            delay,
        )
        self.sleep(delay)
