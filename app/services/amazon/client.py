import json
import logging
import httpx
from typing import Dict, List, Optional, Any, Iterable
from datetime import datetime, timedelta

from app.core.exceptions import AmazonAPIError

logger = logging.getLogger(__name__)


class AmazonClient:
    """
    Asynchronous client for the parts of the Amazon Selling Partner API the
    inventory sync needs.

    Functionality:
        - Login with Amazon (LWA) refresh-token exchange, access token cached in memory.
        - FBA inventory summaries (get_inventory_summaries, paginated by nextToken).
        - Orders and their line items (get_orders, get_order_items).
        - Absolute quantity updates through the Listings Items API (update_listing_quantity).

    Every failure is raised as AmazonAPIError.

    Documentation: https://developer-docs.amazon.com/sp-api/
    """

    TOKEN_URL = "https://api.amazon.com/auth/o2/token"
    DEFAULT_BASE_URL = "https://sellingpartnerapi-na.amazon.com"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        marketplace_id: str,
        seller_id: str = "",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.marketplace_id = marketplace_id
        self.seller_id = seller_id
        self.BASE_URL = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    async def get_access_token(self) -> str:
        """Exchange the refresh token for an access token (cached until a minute before expiry)"""
        if self._access_token and self._token_expires_at and datetime.now() < self._token_expires_at:
            return self._access_token

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self.refresh_token,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Amazon token request failed: {str(e)}")
            raise AmazonAPIError(f"Failed to authenticate with Amazon SP-API: {str(e)}")

        if response.status_code != 200:
            logger.error(f"Amazon token error: {response.text}")
            raise AmazonAPIError("Failed to authenticate with Amazon SP-API")

        payload = response.json()
        self._access_token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in - 60)
        return self._access_token

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        """
        Make an authenticated request to SP-API

        Raises:
            AmazonAPIError: If the request fails or returns a non-2xx status
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        access_token = await self.get_access_token()
        headers = {
            "x-amz-access-token": access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if data:
            logger.debug(f"Data: {json.dumps(data)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=data,
                    params=params
                )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout error: {str(e)}")
            raise AmazonAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Network error: {str(e)}")
            raise AmazonAPIError(f"Network error: {str(e)}")

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"Amazon API error: {response.text}")
            raise AmazonAPIError(f"Request failed ({response.status_code}): {response.text}")

        if response.status_code == 204:
            return {}

        return response.json()

    async def get_inventory_summaries(self, skus: Optional[Iterable[str]] = None) -> List[Dict]:
        """
        Get FBA inventory summaries for the marketplace, following nextToken pages

        Args:
            skus: Restrict to these seller SKUs (empty = all)
        """
        params: Dict[str, Any] = {
            "details": "true",
            "granularityType": "Marketplace",
            "granularityId": self.marketplace_id,
            "marketplaceIds": self.marketplace_id,
        }
        sku_list = list(skus or [])
        if sku_list:
            params["sellerSkus"] = ",".join(sku_list)

        summaries: List[Dict] = []
        while True:
            response = await self._make_request("GET", "/fba/inventory/v1/summaries", params=params)
            payload = response.get("payload") or {}
            summaries.extend(payload.get("inventorySummaries", []))

            next_token = (response.get("pagination") or {}).get("nextToken")
            if not next_token:
                break
            params["nextToken"] = next_token

        return summaries

    async def get_orders(self, created_after: datetime, order_statuses: Optional[Iterable[str]] = None) -> List[Dict]:
        """Get orders created after a timestamp, following NextToken pages"""
        params: Dict[str, Any] = {
            "MarketplaceIds": self.marketplace_id,
            "CreatedAfter": created_after.isoformat(),
        }
        statuses = list(order_statuses or [])
        if statuses:
            params["OrderStatuses"] = ",".join(statuses)

        orders: List[Dict] = []
        while True:
            response = await self._make_request("GET", "/orders/v0/orders", params=params)
            payload = response.get("payload") or {}
            orders.extend(payload.get("Orders", []))

            next_token = payload.get("NextToken")
            if not next_token:
                break
            params = {"MarketplaceIds": self.marketplace_id, "NextToken": next_token}

        return orders

    async def get_order_items(self, amazon_order_id: str) -> List[Dict]:
        response = await self._make_request("GET", f"/orders/v0/orders/{amazon_order_id}/orderItems")
        return (response.get("payload") or {}).get("OrderItems", [])

    async def update_listing_quantity(self, sku: str, quantity: int) -> Dict:
        """
        Set the merchant-fulfilled quantity of a listing.

        The patch replaces fulfillment_availability, so sending the same
        quantity twice leaves the listing unchanged.
        """
        if not self.seller_id:
            raise AmazonAPIError("AMAZON_SELLER_ID is required to update listing quantities")

        body = {
            "productType": "PRODUCT",
            "patches": [
                {
                    "op": "replace",
                    "path": "/attributes/fulfillment_availability",
                    "value": [
                        {
                            "fulfillment_channel_code": "DEFAULT",
                            "quantity": quantity,
                        }
                    ],
                }
            ],
        }
        return await self._make_request(
            "PATCH",
            f"/listings/2021-08-01/items/{self.seller_id}/{sku}",
            data=body,
            params={"marketplaceIds": self.marketplace_id},
        )
