"""
Fitbit shim: daily activity and sleep summaries over OAuth 1.0.

Each point is one calendar day. Pages are built by walking backwards one day at
a time from the end of the window, so ``skip`` counts days and the order is
stable regardless of what the remote account contains.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from dsu.auth.oauth1 import OAuth1Endpoints, OAuth1Engine
from dsu.core.errors import ExternalServiceError
from dsu.models.authorization import AuthorizationToken
from dsu.models.data import DataPoint, Schema, ShimDataPage, apply_columns
from dsu.shims.util import SchemaCatalog, ensure_fresh_token
from dsu.utils.http import ProviderHttpClient, parse_json

logger = logging.getLogger(__name__)

DOMAIN = "fitbit"
API_BASE = "https://api.fitbit.com/1/user/-"

ENDPOINTS = OAuth1Endpoints(
    request_token_url="https://api.fitbit.com/oauth/request_token",
    authorize_url="https://www.fitbit.com/oauth/authorize",
    access_token_url="https://api.fitbit.com/oauth/access_token",
)

ACTIVITIES = "activities"
SLEEP = "sleep"


def _total_distance(summary: Mapping[str, Any]) -> Any:
    for entry in summary.get("distances") or []:
        if entry.get("activity") == "total":
            return entry.get("distance", 0)
    return 0


def _field(name: str) -> Callable[[Mapping[str, Any]], Any]:
    def extract(summary: Mapping[str, Any]) -> Any:
        return summary.get(name)

    return extract


# type name -> (resource, extractor, description)
DATA_TYPES: Dict[str, Tuple[str, Callable[[Mapping[str, Any]], Any], str]] = {
    "calories": (ACTIVITIES, _field("caloriesOut"), "Total calories burned."),
    "steps": (ACTIVITIES, _field("steps"), "Steps taken."),
    "distance_mi": (ACTIVITIES, _total_distance, "Total distance in miles."),
    "floors": (ACTIVITIES, _field("floors"), "Floors climbed."),
    "elevation_ft": (ACTIVITIES, _field("elevation"), "Elevation climbed in feet."),
    "sedentary_minutes": (
        ACTIVITIES,
        _field("sedentaryMinutes"),
        "Minutes spent sedentary.",
    ),
    "lightly_active_minutes": (
        ACTIVITIES,
        _field("lightlyActiveMinutes"),
        "Minutes of light activity.",
    ),
    "fairly_active_minutes": (
        ACTIVITIES,
        _field("fairlyActiveMinutes"),
        "Minutes of moderate activity.",
    ),
    "very_active_minutes": (
        ACTIVITIES,
        _field("veryActiveMinutes"),
        "Minutes of intense activity.",
    ),
    "activity_calories": (
        ACTIVITIES,
        _field("activityCalories"),
        "Calories burned through activity.",
    ),
    "time_asleep_minutes": (SLEEP, _field("totalMinutesAsleep"), "Minutes asleep."),
    "time_in_bed_minutes": (SLEEP, _field("totalTimeInBed"), "Minutes in bed."),
}


def _today() -> date:
    return datetime.now(timezone.utc).date()


class FitbitShim:
    def __init__(
        self,
        *,
        consumer_key: str,
        consumer_secret: str,
        callback_url: str,
        http: ProviderHttpClient,
        today: Callable[[], date] = _today,
    ) -> None:
        self._http = http
        self._today = today
        self._engine = OAuth1Engine(
            domain=DOMAIN,
            endpoints=ENDPOINTS,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            callback_url=callback_url,
            http=http,
        )
        self._catalog = SchemaCatalog(
            DOMAIN, {name: doc for name, (_, _, doc) in DATA_TYPES.items()}
        )

    @property
    def domain(self) -> str:
        return DOMAIN

    def authorization_engine(self) -> OAuth1Engine:
        return self._engine

    def schema_ids(self) -> List[str]:
        return self._catalog.ids()

    def schema_versions(self, schema_id: str) -> List[int]:
        return self._catalog.versions(schema_id)

    def schema(self, schema_id: str, version: int) -> Optional[Schema]:
        return self._catalog.get(schema_id, version)

    async def fetch_data(
        self,
        schema_id: str,
        version: int,
        token: AuthorizationToken,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        columns: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> ShimDataPage:
        _, type_name = self._catalog.require(schema_id, version)
        resource, extract, _ = DATA_TYPES[type_name]
        token, refreshed = await ensure_fresh_token(token, self._engine)

        first_day = start.date() if start is not None else None
        try:
            day: Optional[date] = (
                end.date() if end is not None else self._today()
            ) - timedelta(days=skip)
        except OverflowError:
            # skip walks past the first representable day
            day = None

        points: List[DataPoint] = []
        while (
            day is not None
            and len(points) < limit
            and (first_day is None or day >= first_day)
        ):
            summary = await self._summary(resource, day, token)
            try:
                value = extract(summary)
            except (AttributeError, TypeError) as exc:
                raise ExternalServiceError(
                    f"Fitbit returned a malformed {resource} summary."
                ) from exc
            points.append(
                DataPoint(
                    owner=token.username,
                    schema_id=schema_id,
                    version=version,
                    timestamp=datetime.combine(day, time.min, tzinfo=timezone.utc),
                    data={type_name: value},
                )
            )
            day = day - timedelta(days=1) if day > date.min else None

        logger.info(
            "Fetched %d %s point(s) for %s", len(points), schema_id, token.username
        )
        return ShimDataPage(points=apply_columns(points, columns), refreshed_token=refreshed)

    async def _summary(
        self, resource: str, day: date, token: AuthorizationToken
    ) -> Mapping[str, Any]:
        url = f"{API_BASE}/{resource}/date/{day.isoformat()}.json"
        headers = self._engine.authorization_headers("GET", url, token)
        # en_US selects imperial units, matching the *_mi and *_ft types.
        headers["Accept-Language"] = "en_US"
        response = await self._http.get(url, headers=headers)
        payload = parse_json(response)
        summary = payload.get("summary")
        if not isinstance(summary, dict):
            raise ExternalServiceError(
                f"Fitbit returned a {resource} document without a summary."
            )
        return summary


__all__ = ["DATA_TYPES", "DOMAIN", "ENDPOINTS", "FitbitShim"]
