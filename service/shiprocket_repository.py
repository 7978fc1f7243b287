"""Module for all Shiprocket settlement API calls"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from config import HTTP_TIMEOUT_SECONDS, SHIPROCKET_BASE_URL, SHIPROCKET_TOKEN_TTL_SECONDS, get_secret, logger
from core.fee_breakdown import compute_fee_breakdown
from core.models import FeeBreakdownRow, SettlementRecord
from exceptions import AuthError, SourceUnavailableError

LOGIN_PATH = "/v1/external/auth/login"
SETTLEMENTS_PATH = "/v1/external/settlements"
SOURCE_NAME = "shiprocket"


def fmt_settlement(order: Dict[str, Any], batch: Dict[str, Any]) -> SettlementRecord:
    """Return a normalized SettlementRecord for one order line inside a settlement batch."""
    return SettlementRecord(
        channel_order_id=order.get("channel_order_id"),
        secondary_id=order.get("ute"),
        settlement_order_id=order.get("order_id"),
        tracking_id=order.get("awb"),
        gross_amount=order.get("order_amount"),
        shipping_fee=order.get("shipping_charges"),
        collection_fee=order.get("cod_charges"),
        adjustments=order.get("adjustments"),
        return_reversal_fee=order.get("rto_reversal"),
        net_amount=order.get("net_settlement"),
        settlement_date=batch.get("date") or order.get("remittance_date") or "",
        batch_id=batch.get("id"),
        freight_charge=order.get("total_freight_charge"),
    )


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        # HTML or plain-text error pages
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"HTTP {response.status_code}"


class ShiprocketSettlementSource:
    """
    Settlement source backed by the Shiprocket external API.

    The bearer token is cached on the instance for ``token_ttl_seconds`` and
    refreshed once when the API answers 401.
    """

    def __init__(
        self,
        email: str,
        password: str,
        base_url: str = SHIPROCKET_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        token_ttl_seconds: int = SHIPROCKET_TOKEN_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._email = email
        self._password = password
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._token_ttl_seconds = token_ttl_seconds
        self._clock = clock or time.monotonic
        self._token_lock = threading.Lock()
        self._token: Optional[str] = None
        self._token_obtained_at = 0.0
        self._last_settlements: Optional[List[SettlementRecord]] = None

    @classmethod
    def from_env(cls, session: Optional[requests.Session] = None) -> "ShiprocketSettlementSource":
        email = get_secret("SHIPROCKET_EMAIL")
        password = get_secret("SHIPROCKET_PASSWORD")
        if not email or not password:
            raise AuthError("Missing SHIPROCKET_EMAIL or SHIPROCKET_PASSWORD environment variables", source=SOURCE_NAME)
        return cls(email=email, password=password, session=session)

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_obtained_at = 0.0

    def login(self) -> str:
        """Return a bearer token, logging in only when the cached one is missing or expired."""
        with self._token_lock:
            if self._token and self._clock() - self._token_obtained_at < self._token_ttl_seconds:
                return self._token

            logger.info("Logging in to Shiprocket", base_url=self._base_url)
            try:
                response = self._session.post(
                    f"{self._base_url}{LOGIN_PATH}",
                    json={"email": self._email, "password": self._password},
                    timeout=self._timeout,
                )
            except requests.RequestException as exc:
                logger.error("Shiprocket login request failed", error=str(exc))
                raise SourceUnavailableError(f"Shiprocket login failed: {exc}", source=SOURCE_NAME) from exc

            if response.status_code >= 400:
                message = f"Shiprocket login failed ({response.status_code}): {_error_message(response)}"
                logger.error("Shiprocket login rejected", status=response.status_code, response_text=(response.text or "")[:500])
                if response.status_code in (400, 401, 403, 422):
                    raise AuthError(message, source=SOURCE_NAME, status_code=response.status_code)
                raise SourceUnavailableError(message, source=SOURCE_NAME, status_code=response.status_code)

            try:
                token = (response.json() or {}).get("token")
            except ValueError as exc:
                raise SourceUnavailableError("Shiprocket login failed: malformed JSON response", source=SOURCE_NAME) from exc
            if not token:
                raise AuthError("Shiprocket login failed: no token in response", source=SOURCE_NAME)

            self._token = token
            self._token_obtained_at = self._clock()
            logger.info("Shiprocket login successful; token cached", token_ttl_seconds=self._token_ttl_seconds)
            return token

    def _request(self, path: str, params: Optional[Dict[str, Any]], token: str) -> requests.Response:
        try:
            return self._session.get(
                f"{self._base_url}{path}",
                params=params or {},
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.Timeout as exc:
            logger.error("Shiprocket request timed out", path=path)
            raise SourceUnavailableError(f"Shiprocket network error: timeout: {exc}", source=SOURCE_NAME) from exc
        except requests.RequestException as exc:
            logger.error("Shiprocket network error", path=path, error=str(exc))
            raise SourceUnavailableError(f"Shiprocket network error: {exc}", source=SOURCE_NAME) from exc

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Authenticated GET returning the decoded JSON body."""
        logger.info("Shiprocket GET", path=path)
        response = self._request(path, params, self.login())

        if response.status_code == 401:
            logger.info("Shiprocket token rejected; logging in again", path=path)
            self.invalidate_token()
            response = self._request(path, params, self.login())
            if response.status_code == 401:
                raise AuthError(f"Shiprocket API call failed after token refresh: {_error_message(response)}", source=SOURCE_NAME, status_code=401)

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error("Shiprocket API error", path=path, status=response.status_code, error_message=message)
            if response.status_code == 403:
                raise AuthError(f"Shiprocket API error ({response.status_code}): {message}", source=SOURCE_NAME, status_code=403)
            raise SourceUnavailableError(f"Shiprocket API error ({response.status_code}): {message}", source=SOURCE_NAME, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise SourceUnavailableError(f"Shiprocket API error: malformed JSON from {path}", source=SOURCE_NAME) from exc

    def fetch_settlements(self) -> List[SettlementRecord]:
        """Fetch every settlement batch and flatten its order lines, in batch order."""
        payload = self.get(SETTLEMENTS_PATH)
        if not isinstance(payload, dict):
            raise SourceUnavailableError("Failed to fetch Shiprocket settlements: malformed batch list", source=SOURCE_NAME)
        batches = payload.get("data") or []
        logger.info("Found Shiprocket settlement batches", batch_count=len(batches))

        settlements: List[SettlementRecord] = []
        for batch in batches:
            batch_id = batch.get("id") if isinstance(batch, dict) else None
            if batch_id in (None, ""):
                logger.warning("Skipping settlement batch without id", batch=batch)
                continue

            batch_payload = self.get(f"{SETTLEMENTS_PATH}/{batch_id}")
            if not isinstance(batch_payload, dict):
                raise SourceUnavailableError(f"Failed to fetch Shiprocket settlements: malformed batch {batch_id}", source=SOURCE_NAME)
            lines = batch_payload.get("data") or []
            for line in lines:
                if isinstance(line, dict):
                    settlements.append(fmt_settlement(line, batch))
            logger.info("Fetched settlement batch", batch_id=batch_id, order_count=len(lines))

        logger.info("Fetched Shiprocket settlements", total=len(settlements))
        self._last_settlements = settlements
        return settlements

    def compute_fee_breakdown(self) -> List[FeeBreakdownRow]:
        """Per-order fee table; reuses the settlements from the latest fetch when there is one."""
        settlements = self._last_settlements
        if settlements is None:
            settlements = self.fetch_settlements()
        return compute_fee_breakdown(settlements)

    def check_health(self) -> Dict[str, Any]:
        try:
            self.get(SETTLEMENTS_PATH, params={"limit": 1})
        except AuthError:
            return {"status": False, "message": "Invalid credentials"}
        except SourceUnavailableError as exc:
            if "timeout" in str(exc):
                return {"status": False, "message": "Request timeout"}
            return {"status": False, "message": str(exc)}
        return {"status": True, "message": "Connected"}
