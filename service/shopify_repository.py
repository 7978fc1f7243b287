"""Module for all Shopify Admin API calls"""

import urllib.parse
from typing import Any, Dict, List, Optional

import requests

from config import HTTP_TIMEOUT_SECONDS, SHOPIFY_API_VERSION, SHOPIFY_STORE_DOMAIN, get_secret, logger
from core.models import OrderRecord, PaymentType
from exceptions import AuthError, SourceUnavailableError

PAGE_SIZE = 250  # Shopify max
SOURCE_NAME = "shopify"

_STATUS_HINTS = {
    400: "Verify SHOPIFY_STORE_DOMAIN (e.g. 'example.myshopify.com' without https://) and SHOPIFY_ADMIN_TOKEN are correct. Also check that the token has 'read_orders' scope.",
    401: "SHOPIFY_ADMIN_TOKEN is invalid, expired, or has insufficient scopes. Regenerate with 'read_orders' scope.",
    403: "SHOPIFY_ADMIN_TOKEN does not have permission to read orders.",
}


def _customer_name(order: Dict[str, Any]) -> str:
    customer = order.get("customer") or {}
    return f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()


def _payment_method(order: Dict[str, Any]) -> str:
    gateway = order.get("gateway")
    if gateway:
        return str(gateway)
    names = order.get("payment_gateway_names") or []
    return ", ".join(str(name) for name in names if name)


def fmt_order(order: Dict[str, Any]) -> OrderRecord:
    """Return a normalized OrderRecord for a Shopify order payload."""
    payment_method = _payment_method(order)
    return OrderRecord(
        order_id=str(order.get("id") or ""),
        order_number=order.get("name") or "",
        order_date=order.get("created_at") or "",
        customer_name=_customer_name(order),
        payment_method=payment_method,
        order_total=order.get("total_price"),
        financial_status=order.get("financial_status") or "",
        fulfillment_status=order.get("fulfillment_status") or "",
        payment_type=PaymentType.COD.value if "cod" in payment_method.lower() else PaymentType.PREPAID.value,
    )


def _next_page_info(response: requests.Response) -> Optional[str]:
    next_link = (response.links or {}).get("next") or {}
    url = next_link.get("url")
    if not url:
        return None
    query = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
    values = query.get("page_info") or []
    return values[0] if values else None


class ShopifyOrderSource:
    """Order source backed by the Shopify Admin REST API."""

    def __init__(
        self,
        domain: str,
        token: str,
        api_version: str = SHOPIFY_API_VERSION,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._domain = (domain or "").strip().removeprefix("https://").rstrip("/")
        self._token = token
        self._base_url = f"https://{self._domain}/admin/api/{api_version}"
        self._session = session or requests.Session()
        self._timeout = timeout
        self._page_size = page_size

    @classmethod
    def from_env(cls, session: Optional[requests.Session] = None) -> "ShopifyOrderSource":
        token = get_secret("SHOPIFY_ADMIN_TOKEN")
        if not SHOPIFY_STORE_DOMAIN or not token:
            raise AuthError("Missing SHOPIFY_STORE_DOMAIN or SHOPIFY_ADMIN_TOKEN environment variables", source=SOURCE_NAME)
        return cls(domain=SHOPIFY_STORE_DOMAIN, token=token, session=session)

    @property
    def _headers(self) -> Dict[str, str]:
        return {"X-Shopify-Access-Token": self._token, "Content-Type": "application/json"}

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.get(url, params=params, headers=self._headers, timeout=self._timeout)
        except requests.Timeout as exc:
            logger.error("Shopify request timed out", domain=self._domain, url=url)
            raise SourceUnavailableError(f"Failed to fetch Shopify orders (timeout): {exc}", source=SOURCE_NAME) from exc
        except requests.RequestException as exc:
            logger.error("Shopify request failed", domain=self._domain, url=url, error=str(exc))
            raise SourceUnavailableError(f"Failed to fetch Shopify orders (network): {exc}", source=SOURCE_NAME) from exc

        status = response.status_code
        if status >= 400:
            hint = _STATUS_HINTS.get(status, "")
            message = f"Failed to fetch Shopify orders ({status}): {response.reason or 'HTTP error'}. {hint}".strip()
            logger.error("Shopify API error", domain=self._domain, url=url, status=status, response_text=(response.text or "")[:500])
            if status in (401, 403):
                raise AuthError(message, source=SOURCE_NAME, status_code=status)
            raise SourceUnavailableError(message, source=SOURCE_NAME, status_code=status)
        return response

    def fetch_orders(self) -> List[OrderRecord]:
        """Fetch every order (any status), following cursor pagination until exhausted."""
        orders: List[OrderRecord] = []
        page_info: Optional[str] = None

        while True:
            params: Dict[str, Any] = {"limit": self._page_size}
            # Shopify rejects filters alongside page_info.
            if page_info:
                params["page_info"] = page_info
            else:
                params["status"] = "any"

            response = self._get("/orders.json", params=params)
            try:
                batch = (response.json() or {}).get("orders") or []
            except ValueError as exc:
                raise SourceUnavailableError("Failed to fetch Shopify orders: malformed JSON response", source=SOURCE_NAME) from exc

            for item in batch:
                if not isinstance(item, dict):
                    raise SourceUnavailableError("Failed to fetch Shopify orders: malformed order payload", source=SOURCE_NAME)
                orders.append(fmt_order(item))

            logger.info("Fetched Shopify orders page", page_count=len(batch), total_so_far=len(orders))

            page_info = _next_page_info(response)
            if not page_info:
                break

        logger.info("Fetched Shopify orders", domain=self._domain, total=len(orders))
        return orders

    def check_health(self) -> Dict[str, Any]:
        try:
            self._get("/shop.json")
        except AuthError as exc:
            return {"status": False, "message": "Invalid token" if exc.status_code == 401 else "Permission denied"}
        except SourceUnavailableError as exc:
            if exc.status_code == 404:
                return {"status": False, "message": "Invalid domain"}
            if "timeout" in str(exc):
                return {"status": False, "message": "Request timeout"}
            return {"status": False, "message": str(exc)}
        return {"status": True, "message": "Connected"}
