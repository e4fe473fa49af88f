"""
Unit tests for provider fetch clients
"""

import pytest
import httpx
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from refresh.clients import build_fetch_clients, RoomListAPIClient
from schemas.refresh import Window
from core.config import Settings

WINDOW = Window(check_in=date(2025, 3, 2), check_out=date(2025, 3, 3))


def make_response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = ""
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


def room_payload(*offers):
    return {
        "status": True,
        "data": {
            "block": [
                {
                    "room_name": name,
                    "product_price_breakdown": {"gross_amount_per_night": {"value": value}},
                }
                for name, value in offers
            ]
        }
    }


def make_client(**kwargs):
    return RoomListAPIClient(
        api_url="https://rooms.example.com/getRoomList",
        api_key="test_key",
        api_host="rooms.example.com",
        provider="Booking.com",
        retry_delay=0,
        **kwargs
    )


class TestRoomListAPIClient:
    """Test the room-list API client"""

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=make_response(
                payload=room_payload(("Deluxe King Room", 199.0), ("Twin Room", 149.5))
            ))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is True
        assert result.room_label == "Deluxe King Room"
        assert result.rate_text == "199.0"
        assert [r.room_label for r in result.rooms] == ["Deluxe King Room", "Twin Room"]

        params = get.call_args.kwargs["params"]
        assert params["hotel_id"] == "12345"
        assert params["arrival_date"] == "2025-03-02"
        assert params["departure_date"] == "2025-03-03"
        assert get.call_args.kwargs["headers"]["x-rapidapi-key"] == "test_key"

    @pytest.mark.asyncio
    async def test_locator_url_with_hotel_id(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=make_response(payload=room_payload(("Suite", 300))))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("https://www.booking.com/hotel.html?hotel_id=777", WINDOW)

        assert result.ok is True
        assert get.call_args.kwargs["params"]["hotel_id"] == "777"

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(side_effect=[
                make_response(status_code=503),
                make_response(payload=room_payload(("Suite", 300))),
            ])
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is True
        assert get.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client, \
                patch("refresh.clients.room_list.asyncio.sleep", new=AsyncMock()) as sleep:
            get = AsyncMock(side_effect=[
                make_response(status_code=429, headers={"Retry-After": "7"}),
                make_response(payload=room_payload(("Suite", 300))),
            ])
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is True
        sleep.assert_awaited_once_with(7.0)

    @pytest.mark.asyncio
    async def test_authentication_failure_not_retried(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=make_response(status_code=401))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is False
        assert "Authentication failed" in result.error_message
        assert get.call_count == 1

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=make_response(status_code=404))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is False
        assert "Resource not found" in result.error_message
        assert get.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(side_effect=[
                httpx.ReadTimeout("read timed out"),
                make_response(payload=room_payload(("Suite", 300))),
            ])
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is True
        assert get.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_with_http_date_uses_backoff(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client, \
                patch("refresh.clients.room_list.asyncio.sleep", new=AsyncMock()) as sleep:
            get = AsyncMock(return_value=make_response(
                status_code=429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
            ))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is False
        assert "Rate limit exceeded" in result.error_message
        assert get.call_count == client.max_retries
        assert sleep.await_count == client.max_retries - 1

    @pytest.mark.asyncio
    async def test_network_error_becomes_failed_result(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.fetch("12345", WINDOW)

        assert result.ok is False
        assert "Network error" in result.error_message
        assert get.call_count == client.max_retries

    @pytest.mark.asyncio
    async def test_empty_room_list(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=make_response(payload={"status": True, "data": {"block": []}})
            )

            result = await client.fetch("12345", WINDOW)

        assert result.ok is False
        assert result.error_message == "no room offers in provider response"

    @pytest.mark.asyncio
    async def test_circuit_breaker_opens(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=make_response(status_code=403))
            mock_client.return_value.__aenter__.return_value.get = get

            for _ in range(5):
                await client.fetch("12345", WINDOW)
            result = await client.fetch("12345", WINDOW)

        assert result.ok is False
        assert "Circuit breaker is open" in result.error_message
        assert get.call_count == 5

    @pytest.mark.asyncio
    async def test_invalid_locator_skips_request(self):
        client = make_client()

        with patch("httpx.AsyncClient") as mock_client:
            result = await client.fetch("not a hotel", WINDOW)

        assert result.ok is False
        assert not mock_client.called

    @pytest.mark.parametrize("locator,valid", [
        ("12345", True),
        ("https://www.booking.com/hotel.html?hotel_id=12", True),
        ("https://www.booking.com/hotel/pt/seaside.html", False),
        ("ftp://example.com/?hotel_id=12", False),
        ("http://[broken/?hotel_id=1", False),
        ("", False),
    ])
    def test_validate_locator(self, locator, valid):
        assert (make_client().validate_locator(locator) is None) is valid

    def test_parse_rooms_uses_fallback_fields(self):
        rooms = make_client().parse_rooms({
            "data": {
                "block": [
                    {
                        "name": "Family Room",
                        "product_price_breakdown": {
                            "gross_amount_per_night": {"amount_rounded": "US$210"}
                        }
                    }
                ]
            }
        })

        assert rooms[0].room_label == "Family Room"
        assert rooms[0].rate_text == "US$210"

    def test_parse_rooms_tolerates_malformed_price_fields(self):
        rooms = make_client().parse_rooms({
            "data": {
                "block": [
                    {"room_name": "Twin", "product_price_breakdown": "n/a"},
                    {"room_name": "Suite", "product_price_breakdown": {"gross_amount_per_night": [300]}},
                    {"room_name": "Loft", "product_price_breakdown": {"gross_amount_per_night": {"value": {"amount": 1}}}},
                ]
            }
        })

        assert [(r.room_label, r.rate_text) for r in rooms] == [
            ("Twin", None), ("Suite", None), ("Loft", None)
        ]

    @pytest.mark.asyncio
    async def test_malformed_block_does_not_hide_valid_offer(self):
        client = make_client()
        payload = {
            "data": {
                "block": [
                    {"room_name": "Twin", "product_price_breakdown": "n/a"},
                    {"room_name": "Suite", "product_price_breakdown": {"gross_amount_per_night": {"value": 300}}},
                ]
            }
        }

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=make_response(payload=payload)
            )

            result = await client.fetch("12345", WINDOW)

        assert result.ok is True
        assert result.room_label == "Suite"
        assert result.rate_text == "300"
        assert len(result.rooms) == 2


def test_build_fetch_clients_keyed_by_provider():
    config = Settings(ROOM_LIST_PROVIDER="Booking.com", ROOM_LIST_API_KEY="abc")

    clients = build_fetch_clients(config)

    assert list(clients) == ["Booking.com"]
    assert clients["Booking.com"].api_key == "abc"
