import logging
from datetime import datetime, timezone
from typing import List, Optional

import requests
from defusedxml import ElementTree

from gamelib.errors import RemoteServiceError
from gamelib.models import OwnedGame, UsageData
from gamelib.origin_data import LocalDataResponse, decode_local_data, parse_date

logger = logging.getLogger(__name__)


class OriginApiClient:
    """
    Talks to the Origin / EA web services.

    The bearer token comes from the account login, which happens outside this client.
    Only fetch_local_data works without one.
    """

    LOCAL_DATA_URL = "https://api1.origin.com/ecommerce2/public/{offer_id}/en_US"
    OWNED_GAMES_URL = "https://api1.origin.com/ecommerce2/consolidatedentitlements/{user_id}?machine_hash=1"
    USAGE_URL = "https://api1.origin.com/atom/users/{user_id}/games/{offer_id}/usage"
    ACCOUNT_URL = "https://gateway.ea.com/proxy/identity/pids/me"

    HEADERS = {
        "User-Agent": "GameLibraryImporter/1.0"
    }

    def __init__(self, token: Optional[str] = None, timeout: int = 10):
        self.token = token
        self.timeout = timeout

    def _get(self, url: str, headers: Optional[dict] = None) -> requests.Response:
        all_headers = dict(self.HEADERS)
        all_headers.update(headers or {})
        try:
            return requests.get(url, headers=all_headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteServiceError(f"Request to {url} failed: {e}") from e

    def _check(self, url: str, response: requests.Response):
        if response.status_code != 200:
            raise RemoteServiceError(f"{url} returned status {response.status_code}", response.status_code)

    def _require_token(self) -> str:
        if not self.token:
            raise RemoteServiceError("User is not logged in.")
        return self.token

    def fetch_local_data(self, offer_id: str) -> LocalDataResponse:
        """
        Returns the catalog record of an offer.
        Offers the server doesn't know get a placeholder instead of an error.
        """
        url = self.LOCAL_DATA_URL.format(offer_id=offer_id)
        response = self._get(url)
        if response.status_code == 404:
            logger.info(f"Origin manifest {offer_id} not found on EA server, generating fake manifest.")
            return LocalDataResponse.not_found(offer_id)

        self._check(url, response)
        try:
            return decode_local_data(response.json())
        except ValueError as e:
            raise RemoteServiceError(f"Invalid local data for {offer_id}: {e}") from e

    def fetch_account_id(self) -> str:
        token = self._require_token()
        response = self._get(self.ACCOUNT_URL, {"Authorization": f"Bearer {token}"})
        self._check(self.ACCOUNT_URL, response)
        try:
            data = response.json()
            return str(data["pid"]["pidId"])
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteServiceError(f"Access error: {e}") from e

    def fetch_owned_games(self, user_id: str) -> List[OwnedGame]:
        token = self._require_token()
        url = self.OWNED_GAMES_URL.format(user_id=user_id)
        response = self._get(url, {
            "AuthToken": token,
            "Accept": "application/vnd.origin.v3+json; x-cache/force-write",
        })
        self._check(url, response)
        try:
            entitlements = response.json().get("entitlements") or []
        except (ValueError, AttributeError) as e:
            raise RemoteServiceError(f"Invalid owned games response: {e}") from e

        return [
            OwnedGame(id=item.get("offerId"), offer_type=item.get("offerType"))
            for item in entitlements
            if item.get("offerId")
        ]

    def fetch_usage(self, user_id: str, offer_id: str) -> UsageData:
        token = self._require_token()
        url = self.USAGE_URL.format(user_id=user_id, offer_id=offer_id)
        response = self._get(url, {"AuthToken": token, "MultiplayerId": offer_id})
        self._check(url, response)
        try:
            return parse_usage(response.content)
        except (ElementTree.ParseError, ValueError) as e:
            raise RemoteServiceError(f"Invalid usage data for {offer_id}: {e}") from e


def parse_usage(content) -> UsageData:
    """Parses the <usage> document of the usage service."""
    root = ElementTree.fromstring(content)
    total = root.findtext("total")
    last_session = root.findtext("lastSessionEndTimeStamp")

    usage = UsageData(total=int(total) if total and total.strip().isdigit() else 0)
    if last_session:
        last_session = last_session.strip()
        if last_session.isdigit():
            # Milliseconds since the epoch
            usage.last_session_end = datetime.fromtimestamp(int(last_session) / 1000, tz=timezone.utc)
        else:
            usage.last_session_end = parse_date(last_session)
    return usage
