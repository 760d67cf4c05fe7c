"""HTTP client for a settlement relayer service."""

import json
import os
import socket
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode, urlparse
from urllib.request import Request, urlopen

import structlog

from ..config.defaults import SettlementParams
from ..errors import (
    ConfigurationError,
    InsufficientBalanceError,
    SettlementFailure,
    SettlementRejectedError,
    SettlementUnavailableError,
)
from .base import DepositReceipt, OpenPoolReceipt, PoolSnapshot, SettlementLayer

INSUFFICIENT_BALANCE_CODE = "insufficient_balance"


class HttpSettlementLayer(SettlementLayer):
    """
    Settlement layer reached through a JSON relayer over HTTP.

    The relayer builds, signs and submits the pool contract transactions and
    answers once they are confirmed. Server errors and network failures map
    to SettlementUnavailableError; client errors map to
    SettlementRejectedError, or InsufficientBalanceError when the relayer
    reports ``insufficient_balance``.
    """

    def __init__(self, config: SettlementParams, name: str = "http"):
        super().__init__(name, config.network)
        self.config = config
        self.logger = structlog.get_logger(f"settlement.{name}")
        self._api_token = os.environ.get(config.api_token_env_var)

        parsed = urlparse(config.url)
        if not parsed.scheme or not parsed.netloc:
            raise ConfigurationError(f"Invalid settlement URL: {config.url}", field="settlement.url")

    def open_pool(
        self,
        token_ref: str,
        amount: Decimal,
        reason: str,
        lock_type: int,
        duration: int,
        signing_key: str,
    ) -> OpenPoolReceipt:
        response = self._request("POST", "/pools", operation="open_pool", body={
            "network": self.network,
            "token": token_ref,
            "amount": str(amount),
            "reason": reason,
            "lock_type": int(lock_type),
            "duration": duration,
            "signing_key": signing_key,
        })
        try:
            return OpenPoolReceipt(tx_ref=response["tx_ref"], pool_id=str(response["pool_id"]))
        except KeyError as e:
            raise SettlementFailure(
                f"Relayer response missing field {e}", operation="open_pool"
            ) from e

    def apply_recurring_deposit(
        self,
        pool_id: str,
        amount: Decimal,
        token_ref: str,
        signing_key: str,
    ) -> DepositReceipt:
        response = self._request(
            "POST",
            f"/pools/{quote(pool_id, safe='')}/deposits",
            operation="apply_recurring_deposit",
            pool_id=pool_id,
            body={
                "network": self.network,
                "token": token_ref,
                "amount": str(amount),
                "signing_key": signing_key,
            },
        )
        try:
            return DepositReceipt(tx_ref=response["tx_ref"])
        except KeyError as e:
            raise SettlementFailure(
                f"Relayer response missing field {e}",
                pool_id=pool_id,
                operation="apply_recurring_deposit",
            ) from e

    def get_pool(self, pool_id: str) -> PoolSnapshot:
        response = self._request(
            "GET",
            f"/pools/{quote(pool_id, safe='')}",
            operation="get_pool",
            pool_id=pool_id,
        )
        try:
            return PoolSnapshot(
                pool_id=pool_id,
                amount_saved=Decimal(str(response["amount_saved"])),
                is_active=bool(response.get("is_active", True)),
                token_ref=response.get("token"),
                reason=response.get("reason"),
                lock_type=response.get("lock_type"),
                duration=response.get("duration"),
                extra={k: v for k, v in response.items() if k not in {
                    "amount_saved", "is_active", "token", "reason", "lock_type", "duration"
                }},
            )
        except (KeyError, InvalidOperation) as e:
            raise SettlementFailure(
                f"Malformed pool response: {e}", pool_id=pool_id, operation="get_pool"
            ) from e

    def get_token_symbol(self, token_ref: str) -> str:
        response = self._request(
            "GET",
            f"/tokens/{quote(token_ref, safe='')}/symbol",
            operation="get_token_symbol",
        )
        return str(response.get("symbol", ""))

    def health_check(self) -> bool:
        try:
            self._request("GET", "/health", operation="health_check")
            return True
        except SettlementFailure:
            return False

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        pool_id: Optional[str] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send one JSON request to the relayer and decode its response."""
        url = self.config.url.rstrip("/") + path
        if method == "GET":
            url += "?" + urlencode({"network": self.network})

        headers = {
            'Accept': 'application/json',
            'User-Agent': 'savings-app/0.1'
        }
        data = None
        if body is not None:
            data = json.dumps(body).encode('utf-8')
            headers['Content-Type'] = 'application/json'
            headers['Content-Length'] = str(len(data))
        if self._api_token:
            headers['Authorization'] = f"Bearer {self._api_token}"

        req = Request(url, data=data, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.config.timeout_seconds) as response:
                payload = response.read().decode('utf-8')
                return json.loads(payload) if payload else {}

        except HTTPError as e:
            detail = self._read_error_detail(e)
            self.logger.warning(
                "Settlement relayer HTTP error",
                operation=operation,
                pool_id=pool_id,
                error_code=e.code,
                error_reason=detail.get("error") or e.reason,
            )
            message = f"HTTP {e.code}: {detail.get('error') or e.reason}"

            if e.code >= 500:
                raise SettlementUnavailableError(message, pool_id=pool_id, operation=operation) from e
            if detail.get("code") == INSUFFICIENT_BALANCE_CODE:
                raise InsufficientBalanceError(
                    message,
                    pool_id=pool_id,
                    operation=operation,
                    required=detail.get("required"),
                    available=detail.get("available"),
                ) from e
            raise SettlementRejectedError(
                message, pool_id=pool_id, operation=operation, status_code=e.code
            ) from e

        except (OSError, URLError, socket.timeout) as e:
            self.logger.warning(
                "Settlement relayer network error",
                operation=operation,
                pool_id=pool_id,
                error=str(e),
            )
            raise SettlementUnavailableError(
                f"Network error: {str(e)}", pool_id=pool_id, operation=operation
            ) from e

        except json.JSONDecodeError as e:
            raise SettlementFailure(
                f"Invalid JSON from relayer: {e}", pool_id=pool_id, operation=operation
            ) from e

    @staticmethod
    def _read_error_detail(error: HTTPError) -> dict[str, Any]:
        """Best-effort decode of a relayer error body."""
        try:
            body = error.read().decode('utf-8')
            detail = json.loads(body) if body else {}
            return detail if isinstance(detail, dict) else {}
        except (OSError, ValueError):
            return {}
