# API client unit tests
import httpx
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from app.services.amazon.client import AmazonClient
from app.core.exceptions import AmazonAPIError


def _response(mocker, status_code=200, payload=None, text=""):
    response = mocker.MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    return response


@pytest.fixture
def client():
    return AmazonClient(
        client_id="cid",
        client_secret="secret",
        refresh_token="refresh",
        marketplace_id="ATVPDKIKX0DER",
        seller_id="SELLER1",
    )


@pytest.fixture
def http(mocker):
    """The httpx.AsyncClient instance used inside `async with`"""
    mock_client = mocker.patch("httpx.AsyncClient")
    instance = mock_client.return_value.__aenter__.return_value
    instance.post = AsyncMock(return_value=_response(mocker, payload={"access_token": "Atza|abc", "expires_in": 3600}))
    instance.request = AsyncMock(return_value=_response(mocker, payload={"ok": True}))
    return instance


"""
1. Authentication
"""

async def test_access_token_is_cached(client, http):
    assert await client.get_access_token() == "Atza|abc"
    assert await client.get_access_token() == "Atza|abc"

    http.post.assert_awaited_once()
    _, kwargs = http.post.call_args
    assert kwargs["data"]["grant_type"] == "refresh_token"
    assert kwargs["data"]["refresh_token"] == "refresh"


async def test_token_failure_raises(client, http, mocker):
    http.post.return_value = _response(mocker, status_code=400, text="invalid_grant")

    with pytest.raises(AmazonAPIError):
        await client.get_access_token()


async def test_requests_carry_the_access_token(client, http):
    result = await client._make_request("GET", "/fba/inventory/v1/summaries")

    _, kwargs = http.request.call_args
    assert kwargs["headers"]["x-amz-access-token"] == "Atza|abc"
    assert kwargs["url"] == "https://sellingpartnerapi-na.amazon.com/fba/inventory/v1/summaries"
    assert result == {"ok": True}


"""
2. Error handling
"""

async def test_non_2xx_raises(client, http, mocker):
    http.request.return_value = _response(mocker, status_code=429, text="QuotaExceeded")

    with pytest.raises(AmazonAPIError) as exc_info:
        await client._make_request("GET", "/orders/v0/orders")

    assert "429" in str(exc_info.value)


async def test_timeout_raises(client, http):
    http.request.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(AmazonAPIError):
        await client._make_request("GET", "/orders/v0/orders")


"""
3. Endpoints
"""

async def test_inventory_summaries_follow_next_token(client, mocker):
    mock_make_request = mocker.patch.object(AmazonClient, "_make_request", side_effect=[
        {"payload": {"inventorySummaries": [{"sellerSku": "A"}]}, "pagination": {"nextToken": "t1"}},
        {"payload": {"inventorySummaries": [{"sellerSku": "B"}]}},
    ])

    summaries = await client.get_inventory_summaries()

    assert [s["sellerSku"] for s in summaries] == ["A", "B"]
    assert mock_make_request.call_count == 2
    assert mock_make_request.call_args.kwargs["params"]["nextToken"] == "t1"


async def test_orders_follow_next_token(client, mocker):
    mock_make_request = mocker.patch.object(AmazonClient, "_make_request", side_effect=[
        {"payload": {"Orders": [{"AmazonOrderId": "1"}], "NextToken": "n1"}},
        {"payload": {"Orders": [{"AmazonOrderId": "2"}]}},
    ])

    orders = await client.get_orders(datetime(2024, 1, 1, tzinfo=timezone.utc), ["Unshipped"])

    assert [o["AmazonOrderId"] for o in orders] == ["1", "2"]
    first_params = mock_make_request.call_args_list[0].kwargs["params"]
    assert first_params["OrderStatuses"] == "Unshipped"
    assert first_params["CreatedAfter"].startswith("2024-01-01")


async def test_update_listing_quantity_patches_fulfillment_availability(client, mocker):
    mock_make_request = mocker.patch.object(AmazonClient, "_make_request", return_value={"status": "ACCEPTED"})

    await client.update_listing_quantity("A", 10)

    args, kwargs = mock_make_request.call_args
    assert args == ("PATCH", "/listings/2021-08-01/items/SELLER1/A")
    patch = kwargs["data"]["patches"][0]
    assert patch["op"] == "replace"
    assert patch["value"][0]["quantity"] == 10


async def test_update_listing_quantity_requires_seller_id(mocker):
    client = AmazonClient("cid", "secret", "refresh", "ATVPDKIKX0DER")

    with pytest.raises(AmazonAPIError):
        await client.update_listing_quantity("A", 1)
