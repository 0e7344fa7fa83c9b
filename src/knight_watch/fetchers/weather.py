"""OpenWeather current-conditions fetcher (geocode, then weather)."""

from __future__ import annotations

from ..exceptions import FetchError
from ..watches.models import WeatherObservation
from .base import HttpFetcher


class OpenWeatherFetcher(HttpFetcher):
    name = "openweather"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.openweathermap.org",
        timeout_seconds: float = 15.0,
    ):
        super().__init__(timeout_seconds)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def fetch(self, subject: str) -> WeatherObservation:
        if not self._api_key:
            raise FetchError("Weather API key not configured (OPENWEATHER_API_KEY)")
        places = await self._get_json(
            f"{self._base_url}/geo/1.0/direct",
            params={"q": subject, "limit": 1, "appid": self._api_key},
        )
        if not isinstance(places, list) or not places or "lat" not in places[0]:
            raise FetchError(f'Location "{subject}" not found')
        place = places[0]
        data = await self._get_json(
            f"{self._base_url}/data/2.5/weather",
            params={
                "lat": place["lat"],
                "lon": place["lon"],
                "appid": self._api_key,
                "units": "metric",
            },
        )
        try:
            return WeatherObservation(
                temperature=float(data["main"]["temp"]),
                humidity=data["main"].get("humidity"),
                wind_speed=float(data.get("wind", {}).get("speed", 0.0)),
                description=data["weather"][0]["description"],
                location=place.get("name", subject),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise FetchError(f"Malformed weather response for {subject}: {e}") from e
