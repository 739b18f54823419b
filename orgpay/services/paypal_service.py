import httpx
import logging
import uuid
from typing import Optional, Dict, Any, List, Sequence, Tuple

from orgpay.core.config import settings
from orgpay.core.exceptions import PayPalAPIError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

QueryParams = Sequence[Tuple[str, str]]

CAPTURE_EVENT_TYPES = [
    "PAYMENT.CAPTURE.COMPLETED",
    "PAYMENT.CAPTURE.DENIED",
    "PAYMENT.CAPTURE.REFUNDED",
]


class PayPalService:
    """
    Thin async client for the PayPal REST API.

    Every call uses an explicit timeout. A timeout or transport failure
    raises UpstreamUnavailableError (retryable); a non-2xx answer raises
    PayPalAPIError carrying PayPal's status code and error details.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # transport is injectable so tests can use httpx.MockTransport
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(settings.paypal_client_id and settings.paypal_client_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.paypal_api_url,
            timeout=settings.paypal_timeout,
            transport=self._transport,
        )

    def _partner_headers(self) -> Dict[str, str]:
        if settings.paypal_bn_code:
            return {"PayPal-Partner-Attribution-Id": settings.paypal_bn_code}
        return {}

    @staticmethod
    def _api_error(response: httpx.Response, default_message: str) -> PayPalAPIError:
        """Build an error from a PayPal response body, tolerating non-JSON bodies"""
        message = default_message
        details = None
        debug_id = None
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("message") or body.get("error_description") or body.get("name") or default_message
            details = body.get("details")
            debug_id = body.get("debug_id")

        logger.error(f"❌ PayPal API error {response.status_code}: {message} (debug_id={debug_id})")
        return PayPalAPIError(response.status_code, message, details=details, debug_id=debug_id)

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"⚠️ PayPal timeout on {method} {path}: {e}")
            raise UpstreamUnavailableError("PayPal request timed out")
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ PayPal transport error on {method} {path}: {e}")
            raise UpstreamUnavailableError(f"PayPal unreachable: {e}")

    async def get_access_token(self) -> str:
        """OAuth client-credentials token for the platform app"""
        if not self.is_configured:
            raise UpstreamUnavailableError("PayPal credentials are not configured")

        response = await self._send(
            "POST",
            "/v1/oauth2/token",
            auth=(settings.paypal_client_id, settings.paypal_client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            raise self._api_error(response, "Failed to get PayPal access token")

        token = response.json().get("access_token")
        if not token:
            raise PayPalAPIError(502, "PayPal returned no access token")
        return token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[QueryParams] = None,
        headers: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
        error_message: str = "PayPal request failed",
    ) -> Dict[str, Any]:
        token = access_token or await self.get_access_token()
        request_headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        request_headers.update(headers or {})

        response = await self._send(method, path, json=json, params=params, headers=request_headers)
        if response.status_code >= 400:
            raise self._api_error(response, error_message)

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"items": data}

    # Orders

    async def create_order(self, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Prefer": "return=representation", "PayPal-Request-Id": str(uuid.uuid4())}
        headers.update(self._partner_headers())
        return await self._request(
            "POST", "/v2/checkout/orders",
            json=body, headers=headers, error_message="Failed to create PayPal order"
        )

    async def capture_order(self, order_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Prefer": "return=representation"}
        headers.update(self._partner_headers())
        return await self._request(
            "POST", f"/v2/checkout/orders/{order_id}/capture",
            json={}, headers=headers, access_token=access_token,
            error_message="Failed to capture PayPal order"
        )

    async def get_order(self, order_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/v2/checkout/orders/{order_id}",
            access_token=access_token, error_message="Failed to fetch PayPal order"
        )

    # Subscriptions

    async def create_subscription(self, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Prefer": "return=representation"}
        headers.update(self._partner_headers())
        return await self._request(
            "POST", "/v1/billing/subscriptions",
            json=body, headers=headers, error_message="Failed to create subscription"
        )

    async def get_subscription(self, subscription_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/v1/billing/subscriptions/{subscription_id}",
            access_token=access_token, error_message="Failed to fetch subscription"
        )

    async def find_subscription(self, subscription_id: str, access_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Like get_subscription, but None instead of an error"""
        try:
            return await self.get_subscription(subscription_id, access_token=access_token)
        except (PayPalAPIError, UpstreamUnavailableError) as e:
            logger.warning(f"⚠️ Could not fetch subscription {subscription_id}: {e.detail}")
            return None

    async def cancel_subscription(
        self,
        subscription_id: str,
        reason: str = "Merchant initiated cancellation",
        access_token: Optional[str] = None
    ) -> None:
        await self._request(
            "POST", f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={"reason": reason}, access_token=access_token,
            error_message="Failed to cancel subscription with PayPal"
        )

    async def list_subscriptions(
        self,
        params: QueryParams,
        headers: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", "/v1/billing/subscriptions",
            params=params, headers=headers, access_token=access_token,
            error_message="Failed to list subscriptions"
        )
        subscriptions = data.get("subscriptions")
        return subscriptions if isinstance(subscriptions, list) else []

    # Catalog products and plans

    async def create_product(self, name: str, description: str, type: str = "SERVICE", category: str = "SOFTWARE") -> Dict[str, Any]:
        return await self._request(
            "POST", "/v1/catalogs/products",
            json={"name": name, "description": description, "type": type, "category": category},
            error_message="Failed to create product"
        )

    async def create_plan(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "POST", "/v1/billing/plans",
            json=body, headers={"Prefer": "return=representation"},
            error_message="Failed to create subscription plan"
        )

    async def get_plan(self, plan_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/v1/billing/plans/{plan_id}",
            access_token=access_token, error_message="Failed to fetch plan"
        )

    async def list_plans(self, page_size: int = 20, page: int = 1, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", "/v1/billing/plans",
            params=[
                ("page_size", str(page_size)),
                ("page", str(page)),
                ("total_required", "true"),
                ("status", "ACTIVE"),
            ],
            access_token=access_token,
            error_message="Failed to fetch plans from PayPal"
        )
        plans = data.get("plans")
        return plans if isinstance(plans, list) else []

    # Webhooks

    async def create_webhook(self, url: str, event_types: Optional[List[str]] = None) -> Dict[str, Any]:
        return await self._request(
            "POST", "/v1/notifications/webhooks",
            json={
                "url": url,
                "event_types": [{"name": name} for name in (event_types or CAPTURE_EVENT_TYPES)],
            },
            error_message="Failed to create PayPal webhook"
        )

    async def verify_webhook_signature(
        self,
        *,
        transmission_id: str,
        transmission_time: str,
        transmission_sig: str,
        cert_url: str,
        auth_algo: str,
        webhook_id: str,
        webhook_event: Dict[str, Any]
    ) -> bool:
        """Ask PayPal to verify the delivery signature against the registered webhook id"""
        data = await self._request(
            "POST", "/v1/notifications/verify-webhook-signature",
            json={
                "transmission_id": transmission_id,
                "transmission_time": transmission_time,
                "transmission_sig": transmission_sig,
                "cert_url": cert_url,
                "auth_algo": auth_algo,
                "webhook_id": webhook_id,
                "webhook_event": webhook_event,
            },
            error_message="Failed to verify webhook signature"
        )
        return data.get("verification_status") == "SUCCESS"


# Create a singleton instance
paypal_service = PayPalService()
