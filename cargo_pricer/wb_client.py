"""
Marketplace API client.

Thin wrapper around a requests.Session: authorization header, per-call
timeout and exponential backoff on rate limits and network errors.
Returns raw decoded JSON; resolvers.py and catalog.py turn it into records.
"""

import time
from typing import Dict, Optional

import requests

from . import config
from .models import ApiError, CardsPage, CardsPageRequest, Cursor, PriceListRequest, ProductCard


class WBClient:
    """
    Client for the marketplace seller APIs.

    Handles authentication and retries for tariff, commission, card list
    and price list endpoints.
    """

    def __init__(self, api_key: str, session: Optional[requests.Session] = None,
                 timeout: float = config.REQUEST_TIMEOUT, max_retries: int = config.MAX_RETRIES,
                 sleep=time.sleep):
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': api_key,
            'Accept': 'application/json',
        })
        self.timeout = timeout
        self.max_retries = max_retries
        self._sleep = sleep

    def _backoff(self, attempt: int) -> int:
        return min(config.INITIAL_RETRY_DELAY * (2 ** attempt), config.MAX_RETRY_DELAY)

    def _request(self, method: str, url: str, **kwargs) -> Dict:
        """Send a request with exponential backoff retry logic."""
        last_error = "no attempts made"
        for attempt in range(self.max_retries):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)

                if response.status_code == 429:
                    delay = self._backoff(attempt)
                    print(f"    [RATE-LIMITED] 429 response, backoff {delay}s "
                          f"(attempt {attempt+1}/{self.max_retries})", flush=True)
                    last_error = "rate limited"
                    self._sleep(delay)
                    continue

                if response.status_code >= 500:
                    delay = self._backoff(attempt)
                    print(f"    [HTTP-ERROR] Status {response.status_code}, retry in {delay}s "
                          f"(attempt {attempt+1}/{self.max_retries})", flush=True)
                    last_error = f"HTTP {response.status_code}"
                    self._sleep(delay)
                    continue

                if response.status_code >= 400:
                    print(f"    [HTTP-ERROR] Status {response.status_code} for {url}", flush=True)
                    raise ApiError(f"HTTP {response.status_code} from {url}: {response.text[:200]}")

                return response.json()

            except requests.exceptions.Timeout:
                delay = self._backoff(attempt)
                print(f"    [TIMEOUT] Request timed out after {self.timeout}s, retry in {delay}s "
                      f"(attempt {attempt+1}/{self.max_retries})", flush=True)
                last_error = "timeout"
                self._sleep(delay)

            except requests.exceptions.ConnectionError as e:
                delay = self._backoff(attempt)
                print(f"    [CONN-ERROR] {str(e)[:50]}, retry in {delay}s "
                      f"(attempt {attempt+1}/{self.max_retries})", flush=True)
                last_error = str(e)
                self._sleep(delay)

            except ValueError as e:
                # Body was not JSON
                raise ApiError(f"Invalid JSON from {url}: {e}")

        raise ApiError(f"{method} {url} failed after {self.max_retries} attempts: {last_error}")

    # =========================================================================
    # Endpoints
    # =========================================================================

    def get_box_tariffs(self, tariff_date: str) -> Dict:
        return self._request('GET', config.TARIFFS_URL, params={'date': tariff_date})

    def get_commissions(self) -> Dict:
        return self._request('GET', config.COMMISSION_URL)

    def get_price_list(self, request: PriceListRequest) -> Dict:
        return self._request('GET', config.PRICES_URL, params=request.to_params())

    def get_cards_page(self, request: CardsPageRequest) -> CardsPage:
        """Fetch one cursor page of product cards."""
        data = self._request('POST', config.CARDS_LIST_URL, json=request.to_payload())
        cursor = data.get('cursor') or {}
        return CardsPage(
            cards=[ProductCard.from_api(c) for c in data.get('cards') or []],
            cursor=Cursor(
                updated_at=cursor.get('updatedAt') or "",
                nm_id=int(cursor.get('nmID') or 0),
            ),
        )
