import logging
from typing import List, Optional

import requests

from gamelib.errors import RemoteServiceError
from gamelib.models import OwnedGame

logger = logging.getLogger(__name__)


class SteamApiClient:
    """
    Fetches account libraries and build information from Steam web services.
    """

    OWNED_GAMES_URL = "https://api.steampowered.com/IPlayerService/GetOwnedGames/v0001/"
    PRODUCT_INFO_URL = "https://api.steamcmd.net/v1/info/{app_id}"

    HEADERS = {
        "User-Agent": "GameLibraryImporter/1.0"
    }

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    def _get_json(self, url: str, params: Optional[dict] = None):
        try:
            response = requests.get(url, params=params, headers=self.HEADERS, timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteServiceError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise RemoteServiceError(f"{url} returned status {response.status_code}", response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(f"{url} returned invalid JSON: {e}") from e

    def fetch_owned_games(self, user_id: int, api_key: str, include_free_sub: bool = False) -> List[OwnedGame]:
        """
        Returns the games owned by a Steam account through the Web API.
        Works for private profiles as long as the API key belongs to the account.
        """
        params = {
            "key": api_key,
            "steamid": user_id,
            "include_appinfo": 1,
            "include_played_free_games": 1,
            "skip_unvetted_apps": 0,
            "format": "json",
        }
        if include_free_sub:
            params["include_free_sub"] = 1

        data = self._get_json(self.OWNED_GAMES_URL, params)
        games = (data or {}).get("response", {}).get("games")
        if games is None:
            raise RemoteServiceError("No games found on specified Steam account.")

        return [
            OwnedGame(
                id=str(game.get("appid")),
                name=game.get("name"),
                playtime_minutes=int(game.get("playtime_forever") or 0),
            )
            for game in games
        ]

    def fetch_latest_build(self, app_id: str, branch: str = "public") -> Optional[int]:
        """
        Returns the current build id of an app branch, or None if the branch is unknown.
        """
        data = self._get_json(self.PRODUCT_INFO_URL.format(app_id=app_id))
        info = (data or {}).get("data", {}).get(str(app_id), {})
        build_id = info.get("depots", {}).get("branches", {}).get(branch or "public", {}).get("buildid")
        if build_id is None:
            logger.warning(f"No build id for {app_id} on branch {branch}")
            return None
        try:
            return int(build_id)
        except (TypeError, ValueError):
            logger.warning(f"Invalid build id {build_id!r} for {app_id}")
            return None
