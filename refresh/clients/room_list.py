"""
Room-list API client with retry and circuit breaker.

Prices a property for one stay window through a JSON room-list endpoint
(RapidAPI booking-com15 `getRoomList`):
- Exponential backoff retry logic for transient failures
- Circuit breaker pattern to stop hammering a failing provider
- Retry-After support on HTTP 429
- Every failure reported as an unsuccessful FetchResult
"""

import httpx
import asyncio
from typing import List, Dict, Any, Optional
from datetime import datetime, timedelta
from urllib.parse import urlparse, parse_qs
from refresh.clients.base import FetchClient
from schemas.refresh import FetchResult, FetchedRoom, Window
from core.config import settings
from core.exceptions import (
    FetchError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    ResourceNotFoundError,
    RetryableError,
    NonRetryableError,
)
import logging

logger = logging.getLogger(__name__)


class RoomListAPIClient(FetchClient):
    """
    Fetch room offers from a RapidAPI-style room-list endpoint.

    The source locator is either the provider's numeric hotel id or a URL
    carrying a `hotel_id` query parameter.

    Attributes:
        max_retries: Maximum number of attempts per fetch (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Per-request timeout in seconds (default: 30.0)
        circuit_breaker_threshold: Failures before circuit opens (default: 5)
        circuit_breaker_timeout: Seconds before circuit reset (default: 60)
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_host: Optional[str] = None,
        provider: Optional[str] = None,
        currency: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: float = 30.0
    ):
        self.api_url = api_url or settings.ROOM_LIST_API_URL
        self.api_key = api_key or settings.ROOM_LIST_API_KEY
        self.api_host = api_host or settings.ROOM_LIST_API_HOST
        self.provider = provider or settings.ROOM_LIST_PROVIDER
        self.currency = currency or settings.ROOM_LIST_CURRENCY
        self.max_retries = max_retries or settings.FETCH_MAX_RETRIES
        self.retry_delay = settings.FETCH_RETRY_DELAY if retry_delay is None else retry_delay
        self.timeout = timeout

        # Circuit breaker state
        self._circuit_breaker_failures = 0
        self._circuit_breaker_threshold = 5
        self._circuit_breaker_open_until: Optional[datetime] = None
        self._circuit_breaker_timeout = 60  # seconds

    def _is_circuit_open(self) -> bool:
        """Check if circuit breaker is open."""
        if self._circuit_breaker_open_until is None:
            return False

        if datetime.utcnow() >= self._circuit_breaker_open_until:
            logger.info(f"Circuit breaker reset for {self.provider}")
            self._circuit_breaker_failures = 0
            self._circuit_breaker_open_until = None
            return False

        return True

    def _record_failure(self):
        """Record a failure and potentially open circuit breaker."""
        self._circuit_breaker_failures += 1

        if self._circuit_breaker_failures >= self._circuit_breaker_threshold:
            self._circuit_breaker_open_until = datetime.utcnow() + timedelta(
                seconds=self._circuit_breaker_timeout
            )
            logger.warning(
                f"Circuit breaker opened for {self.provider}. "
                f"Will retry after {self._circuit_breaker_timeout} seconds."
            )

    def _record_success(self):
        """Record a successful request."""
        self._circuit_breaker_failures = 0
        self._circuit_breaker_open_until = None

    @staticmethod
    def extract_hotel_id(locator: str) -> Optional[str]:
        """Provider hotel id from a bare id or a URL with a hotel_id parameter"""
        if locator is None:
            return None
        locator = locator.strip()
        if locator.isdigit():
            return locator

        try:
            parsed = urlparse(locator)
            query = parse_qs(parsed.query)
        except ValueError:
            return None
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        values = query.get("hotel_id", [])
        if values and values[0].isdigit():
            return values[0]
        return None

    def validate_locator(self, locator: str) -> Optional[str]:
        error = super().validate_locator(locator)
        if error:
            return error
        if self.extract_hotel_id(locator) is None:
            return f"invalid source locator '{locator}': expected a hotel id or a URL with hotel_id"
        return None

    def _build_request(self, hotel_id: str, window: Window):
        headers = {
            "x-rapidapi-key": self.api_key or "",
            "x-rapidapi-host": self.api_host,
        }
        params = {
            "hotel_id": hotel_id,
            "arrival_date": window.check_in.isoformat(),
            "departure_date": window.check_out.isoformat(),
            "adults": 1,
            "room_qty": 1,
            "units": "metric",
            "temperature_unit": "c",
            "languagecode": "en-us",
            "currency_code": self.currency,
            "location": "US",
        }
        return headers, params

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        """Seconds from a Retry-After header; HTTP-date values are ignored"""
        value = response.headers.get("Retry-After")
        if value is None:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            return None

    def _check_status(self, response: httpx.Response, url: str, attempt: int) -> None:
        """Raise the fetch error matching a non-success status code"""
        context = {
            "status_code": response.status_code,
            "api_url": url,
            "provider": self.provider,
            "retry_count": attempt + 1
        }

        if response.status_code == 401 or response.status_code == 403:
            raise AuthenticationError(f"Authentication failed for {url}", context=context)

        if response.status_code == 404:
            raise ResourceNotFoundError(f"Resource not found: {url}", context=context)

        if response.status_code == 429:
            raise RateLimitError(
                f"Rate limit exceeded for {url}",
                context=context,
                retry_after=self._retry_after(response)
            )

        if response.status_code >= 500:
            context["response_body"] = response.text[:500]
            raise NetworkError(
                f"Server error {response.status_code} after {attempt + 1} attempts",
                context=context
            )

    async def _make_request_with_retry(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        params: Dict[str, Any]
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic and exponential backoff.

        RetryableError subclasses are retried until max_retries is reached;
        NonRetryableError subclasses fail on the first attempt.

        Raises:
            FetchError: For non-retryable errors or an open circuit
            NetworkError: For retryable network errors after max retries
        """
        if self._is_circuit_open():
            raise FetchError(
                f"Circuit breaker is open for {self.provider}",
                context={
                    "provider": self.provider,
                    "api_url": url,
                    "open_until": self._circuit_breaker_open_until.isoformat()
                }
            )

        last_exception = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"Request attempt {attempt + 1}/{self.max_retries} to {url}")

                try:
                    response = await client.get(
                        url,
                        headers=headers,
                        params=params,
                        timeout=self.timeout
                    )
                except httpx.TimeoutException as e:
                    raise NetworkError(
                        f"Request timeout after {attempt + 1} attempts",
                        context={
                            "api_url": url,
                            "provider": self.provider,
                            "timeout": self.timeout,
                            "retry_count": attempt + 1
                        },
                        original_exception=e
                    )
                except httpx.NetworkError as e:
                    raise NetworkError(
                        f"Network error after {attempt + 1} attempts",
                        context={
                            "api_url": url,
                            "provider": self.provider,
                            "retry_count": attempt + 1
                        },
                        original_exception=e
                    )

                self._check_status(response, url, attempt)
                response.raise_for_status()

            except RetryableError as e:
                last_exception = e
                if attempt == self.max_retries - 1:
                    self._record_failure()
                    raise

                delay = self.retry_delay * (2 ** attempt)
                if isinstance(e, RateLimitError) and e.retry_after is not None:
                    delay = e.retry_after
                logger.warning(
                    f"{e.message}. Retrying in {delay} seconds "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            except NonRetryableError:
                self._record_failure()
                raise

            except httpx.HTTPStatusError as e:
                # Remaining 4xx responses will not change on retry
                self._record_failure()
                raise FetchError(
                    f"Unexpected HTTP status {e.response.status_code}",
                    context={
                        "status_code": e.response.status_code,
                        "api_url": url,
                        "provider": self.provider
                    },
                    original_exception=e
                )

            self._record_success()
            return response

        raise FetchError(
            "Max retries exceeded",
            context={"api_url": url, "provider": self.provider},
            original_exception=last_exception
        )

    def parse_rooms(self, payload: Any) -> List[FetchedRoom]:
        """
        Read room offers out of a room-list payload.

        Offers live under `data.block`; the label is `room_name` (or `name`)
        and the rate is the gross per-night price. Malformed price fields
        leave the offer without a rate.
        """
        if not isinstance(payload, dict):
            return []
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            return []
        blocks = data.get("block") or []
        if not isinstance(blocks, list):
            return []

        rooms = []
        for block in blocks:
            if not isinstance(block, dict):
                continue
            label = block.get("room_name") or block.get("name")
            if isinstance(label, (dict, list)):
                label = None

            rate = None
            breakdown = block.get("product_price_breakdown")
            per_night = breakdown.get("gross_amount_per_night") if isinstance(breakdown, dict) else None
            if isinstance(per_night, dict):
                rate = per_night.get("value")
                if rate is None:
                    rate = per_night.get("amount_rounded")
                if isinstance(rate, (dict, list)):
                    rate = None

            rooms.append(FetchedRoom(room_label=label, rate_text=rate))

        return rooms

    async def fetch(self, locator: str, window: Window) -> FetchResult:
        hotel_id = self.extract_hotel_id(locator)
        if hotel_id is None:
            return FetchResult.failure(f"invalid source locator '{locator}'")

        headers, params = self._build_request(hotel_id, window)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._make_request_with_retry(
                    client, self.api_url, headers, params
                )
        except FetchError as e:
            logger.warning(
                f"Fetch failed for {self.provider} hotel {hotel_id} {window}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return FetchResult.failure(e.message)
        except httpx.HTTPError as e:
            logger.warning(f"Fetch failed for {self.provider} hotel {hotel_id} {window}: {e}")
            return FetchResult.failure(f"HTTP error: {e}")

        try:
            payload = response.json()
        except ValueError:
            return FetchResult.failure("provider returned a non-JSON response")

        rooms = self.parse_rooms(payload)
        if not rooms:
            return FetchResult.failure("no room offers in provider response")

        headline = next((room for room in rooms if room.room_label and room.rate_text), rooms[0])
        logger.info(f"Fetched {len(rooms)} offers from {self.provider} for hotel {hotel_id} {window}")
        return FetchResult(
            ok=True,
            room_label=headline.room_label,
            rate_text=headline.rate_text,
            rooms=rooms
        )
