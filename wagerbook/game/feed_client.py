"""
Live match feed client.

Polls the feed's match events endpoint and turns the raw JSON into
validated RawFeedEvent objects. Nothing here touches a session; the
LiveMatchEngine decides what to do with the events.
"""

import logging
import time
import requests
from typing import Dict, List, Optional
from pydantic import ValidationError

from .. import config
from .feed_schemas import RawFeedEvent

logger = logging.getLogger(__name__)


class LiveFeedClient:
    """Client for polling a live match events API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = config.REQUEST_TIMEOUT,
        max_retries: int = config.REQUEST_MAX_RETRIES
    ):
        """
        Initialize feed client.

        Args:
            api_key: Feed authentication token
            base_url: API root (default: config.FEED_BASE_URL)
            timeout: Request timeout in seconds
            max_retries: Attempts per request before giving up
        """
        self.base_url = (base_url or config.FEED_BASE_URL).rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries

        # Session for connection pooling
        self.session = requests.Session()
        if self.api_key:
            self.session.headers['X-Auth-Token'] = self.api_key

    def fetch_match_events(self, match_id: str) -> Dict:
        """
        Poll the feed for all events of a match so far.

        Returns:
            Raw JSON response ({"events": [...]})

        Raises:
            requests.RequestException: On API failure
        """
        endpoint = f"{self.base_url}/matches/{match_id}/events"

        try:
            response = self._make_request(endpoint, params={})
            logger.debug(f"Fetched match events: {len(response.get('events', []))} events")
            return response
        except requests.RequestException as e:
            logger.error(f"Failed to fetch match events for {match_id}: {e}")
            raise

    def normalize_events(self, raw_data: Dict) -> List[RawFeedEvent]:
        """
        Validate raw feed events.

        Malformed items are logged and skipped. The result is ordered by
        match minute, keeping feed order within a minute.
        """
        items = raw_data.get('events', []) if isinstance(raw_data, dict) else []
        events = []

        for item in items:
            try:
                events.append(RawFeedEvent(**_stringify_ids(item)))
            except (ValidationError, TypeError) as e:
                logger.error(f"Failed to parse feed event: {e}\nData: {item}")
                continue

        events.sort(key=lambda e: e.minute)
        logger.debug(f"Normalized {len(events)} of {len(items)} feed events")
        return events

    def _make_request(self, endpoint: str, params: Dict) -> Dict:
        """
        Make HTTP request with retries and exponential backoff.

        Raises:
            requests.RequestException: After all retries exhausted
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                logger.debug(f"GET {endpoint} (attempt {attempt}/{self.max_retries})")
                response = self.session.get(endpoint, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

            except requests.Timeout:
                logger.warning(f"Request timeout (attempt {attempt}/{self.max_retries})")
                if attempt == self.max_retries:
                    raise
                time.sleep(2 ** attempt)

            except requests.RequestException as e:
                logger.error(f"Request failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt == self.max_retries:
                    raise
                time.sleep(2 ** attempt)

        raise requests.RequestException(f"No attempts made for {endpoint}")

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()


# Feeds send numeric ids; the schema keeps them as strings
_ID_KEYS = ('id', 'playerId', 'teamId', 'playerOffId', 'playerOnId')


def _stringify_ids(item: Dict) -> Dict:
    if not isinstance(item, dict):
        raise TypeError(f"Expected an object, got {type(item).__name__}")
    return {
        key: str(value) if key in _ID_KEYS and value is not None else value
        for key, value in item.items()
    }
