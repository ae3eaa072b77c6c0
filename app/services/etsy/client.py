import json
import logging
import httpx
from typing import Dict, List, Optional, Any

from app.core.exceptions import EtsyAPIError

logger = logging.getLogger(__name__)


class EtsyClient:
    """
    Asynchronous client for the Etsy Open API v3 (shop listings, listing
    inventory and receipts).

    Authentication uses the app keystring (x-api-key) plus an OAuth2 bearer
    token obtained out of band.

    Documentation: https://developers.etsy.com/documentation/
    """

    BASE_URL = "https://openapi.etsy.com/v3"

    def __init__(self, api_key: str, access_token: str, shop_id: str, timeout: float = 30.0):
        self.api_key = api_key
        self.access_token = access_token
        self.shop_id = shop_id
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        """
        Make a request to the Etsy API

        Raises:
            EtsyAPIError: If the request fails or returns a non-2xx status
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"

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
                    headers=self._get_headers(),
                    json=data,
                    params=params
                )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout error: {str(e)}")
            raise EtsyAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Network error: {str(e)}")
            raise EtsyAPIError(f"Network error: {str(e)}")

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"Etsy API error: {response.text}")
            raise EtsyAPIError(f"Request failed ({response.status_code}): {response.text}")

        if response.status_code == 204:
            return {}

        return response.json()

    async def get_shop(self) -> Dict:
        return await self._make_request("GET", f"/application/shops/{self.shop_id}")

    async def get_listings(self, limit: int = 100, offset: int = 0, state: str = "active") -> Dict:
        """One page of shop listings, with their inventory included"""
        params = {
            "limit": limit,
            "offset": offset,
            "state": state,
            "includes": "Inventory",
        }
        return await self._make_request("GET", f"/application/shops/{self.shop_id}/listings", params=params)

    async def get_all_listings(self, page_size: int = 100, state: str = "active") -> List[Dict]:
        """Get all listings by paginating through results"""
        all_listings: List[Dict] = []
        offset = 0

        while True:
            response = await self.get_listings(limit=page_size, offset=offset, state=state)
            listings = response.get("results", [])
            if not listings:
                break

            all_listings.extend(listings)

            total = response.get("count", 0)
            offset += page_size
            if offset >= total:
                break

        return all_listings

    async def get_listing_inventory(self, listing_id: str) -> Dict:
        return await self._make_request("GET", f"/application/listings/{listing_id}/inventory")

    async def update_listing_inventory(self, listing_id: str, inventory: Dict[str, Any]) -> Dict:
        """Replace a listing's inventory (products, offerings and the *_on_property lists)"""
        return await self._make_request("PUT", f"/application/listings/{listing_id}/inventory", data=inventory)

    async def get_receipts(self, min_created: Optional[int] = None, limit: int = 100, offset: int = 0) -> Dict:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if min_created is not None:
            params["min_created"] = min_created
        return await self._make_request("GET", f"/application/shops/{self.shop_id}/receipts", params=params)

    async def get_all_receipts(self, min_created: Optional[int] = None, page_size: int = 100) -> List[Dict]:
        receipts: List[Dict] = []
        offset = 0

        while True:
            response = await self.get_receipts(min_created=min_created, limit=page_size, offset=offset)
            page = response.get("results", [])
            if not page:
                break

            receipts.extend(page)

            total = response.get("count", 0)
            offset += page_size
            if offset >= total:
                break

        return receipts
