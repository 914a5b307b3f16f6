"""
HTTP connector for the Strava athlete activities endpoint.

API documentation: https://developers.strava.com/docs/reference/#api-Activities-getLoggedInAthleteActivities
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from ..core.connector import ActivityFetcher, FetchParams
from ..core.exceptions import RemoteFetchError
from ..core.retry import RetryConfig, retry_with_backoff


logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class RetryableResponseError(RemoteFetchError):
    """Non-success response worth retrying (rate limit or server error)."""
    pass


class StravaActivitiesConnector(ActivityFetcher):
    """
    Fetches pages of the logged-in athlete's activities.

    Supports:
    - Bearer-token authentication per call
    - Rate limiting between requests
    - Retries with exponential backoff on transport errors, 429 and 5xx
    """

    BASE_URL = "https://www.strava.com/api/v3"
    ACTIVITIES_PATH = "/athlete/activities"

    def __init__(
        self,
        base_url: Optional[str] = None,
        rate_limit_delay: float = 0.0,
        timeout: int = 30,
        max_retries: int = 3,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the connector.

        Args:
            base_url: API base URL (defaults to the public Strava API)
            rate_limit_delay: Minimum seconds between requests
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per page
            user_agent: Custom User-Agent header
            session: Optional pre-configured requests session
            sleep: Sleep function (injectable for tests)
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self.retry_config = RetryConfig(max_attempts=max(1, max_retries))
        self.user_agent = user_agent or "ActivityArchive/1.0"
        self.session = session or requests.Session()
        self._sleep = sleep
        self.last_request_time = 0.0

    def fetch(self, access_token: str, params: FetchParams) -> List[Dict[str, Any]]:
        """
        Fetch one page of activities.

        Raises:
            RemoteFetchError on non-success status, exhausted retries, or a
            payload that is not a list
        """
        if not access_token:
            raise RemoteFetchError("Missing access token", status_code=401)

        url = f"{self.base_url}{self.ACTIVITIES_PATH}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        query = params.to_query()

        def attempt() -> Any:
            self._wait_for_rate_limit()
            response = self.session.get(url, headers=headers, params=query, timeout=self.timeout)
            return self._parse_response(response)

        result = retry_with_backoff(
            attempt,
            self.retry_config,
            retry_on=(requests.exceptions.RequestException, RetryableResponseError),
            operation_name=f"GET {self.ACTIVITIES_PATH} page={query.get('page')}",
            sleep=self._sleep,
        )

        if result.success:
            return result.result

        error = result.error
        if isinstance(error, RemoteFetchError):
            raise error
        raise RemoteFetchError(
            f"Request failed after {result.attempts} attempts: {error}"
        ) from error

    def _parse_response(self, response: requests.Response) -> List[Dict[str, Any]]:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableResponseError(
                f"Activities request returned HTTP {status}", status_code=status
            )
        if status < 200 or status >= 300:
            raise RemoteFetchError(
                f"Activities request returned HTTP {status}", status_code=status
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteFetchError(
                f"Activities response is not JSON: {e}", status_code=status
            ) from e

        if not isinstance(payload, list):
            raise RemoteFetchError(
                "Activities response is not a list", status_code=status
            )
        return [item for item in payload if isinstance(item, dict)]

    def _wait_for_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit_delay > 0:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.rate_limit_delay:
                self._sleep(self.rate_limit_delay - elapsed)
        self.last_request_time = time.time()

    def get_name(self) -> str:
        return "strava"

    def close(self) -> None:
        """Close the session."""
        if self.session:
            self.session.close()
