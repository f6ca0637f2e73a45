"""Withings shim: body measurements over OAuth 1.0 with query-string signing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from dsu.auth.oauth1 import OAuth1Endpoints, OAuth1Engine
from dsu.core.errors import ExternalServiceError, InvalidRequestError
from dsu.models.authorization import AuthorizationToken
from dsu.models.data import DataPoint, Schema, ShimDataPage, apply_columns
from dsu.shims.util import SchemaCatalog, ensure_fresh_token
from dsu.utils.http import ProviderHttpClient, parse_json

logger = logging.getLogger(__name__)

DOMAIN = "withings"
MEASURE_URL = "https://wbsapi.withings.net/measure"
USERID_EXTRA = "userid"

ENDPOINTS = OAuth1Endpoints(
    request_token_url="https://oauth.withings.com/account/request_token",
    authorize_url="https://oauth.withings.com/account/authorize",
    access_token_url="https://oauth.withings.com/account/access_token",
)

# type name -> (Withings measure type, description)
MEASURE_TYPES: Dict[str, Tuple[int, str]] = {
    "weight_kg": (1, "Body weight in kilograms."),
    "height_m": (4, "Height in meters."),
    "fat_free_mass_kg": (5, "Fat-free mass in kilograms."),
    "fat_ratio_percent": (6, "Body fat ratio in percent."),
    "fat_mass_kg": (8, "Fat mass in kilograms."),
    "diastolic_blood_pressure_mmhg": (9, "Diastolic blood pressure in mmHg."),
    "systolic_blood_pressure_mmhg": (10, "Systolic blood pressure in mmHg."),
    "heart_pulse_bpm": (11, "Heart pulse in beats per minute."),
}


class WithingsAuthorizationEngine(OAuth1Engine):
    """Withings reports the account id on the callback; every data call needs it."""

    def _token_extras(
        self, body: Mapping[str, str], callback: Mapping[str, str]
    ) -> Dict[str, Any]:
        userid = callback.get(USERID_EXTRA) or body.get(USERID_EXTRA)
        if not userid:
            raise InvalidRequestError("The Withings callback did not include a userid.")
        return {USERID_EXTRA: userid}


def _scaled(measure: Mapping[str, Any]) -> float:
    value = float(measure["value"])
    unit = measure.get("unit")
    if unit is not None:
        value *= 10 ** int(unit)
    return value


class WithingsShim:
    def __init__(
        self,
        *,
        consumer_key: str,
        consumer_secret: str,
        callback_url: str,
        http: ProviderHttpClient,
    ) -> None:
        self._http = http
        self._engine = WithingsAuthorizationEngine(
            domain=DOMAIN,
            endpoints=ENDPOINTS,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            callback_url=callback_url,
            http=http,
        )
        self._catalog = SchemaCatalog(
            DOMAIN, {name: doc for name, (_, doc) in MEASURE_TYPES.items()}
        )

    @property
    def domain(self) -> str:
        return DOMAIN

    def authorization_engine(self) -> WithingsAuthorizationEngine:
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
        measure_type, _ = MEASURE_TYPES[type_name]
        token, refreshed = await ensure_fresh_token(token, self._engine)

        userid = token.extras.get(USERID_EXTRA)
        if not userid:
            raise InvalidRequestError(
                "The stored Withings token has no userid; re-authorize the domain."
            )

        params: Dict[str, str] = {"action": "getmeas", "devtype": "1", "userid": str(userid)}
        if start is not None:
            params["startdate"] = str(int(start.timestamp()))
        if end is not None:
            params["enddate"] = str(int(end.timestamp()))
        params.update(self._engine.sign_request("GET", MEASURE_URL, token, params))

        payload = parse_json(await self._http.get(MEASURE_URL, params=params))
        groups = self._measure_groups(payload)

        matches: List[Tuple[datetime, int, float]] = []
        try:
            for group in groups:
                if not isinstance(group, dict) or group.get("date") is None:
                    continue
                for measure in group.get("measures") or []:
                    if measure.get("type") == measure_type and "value" in measure:
                        matches.append(
                            (
                                datetime.fromtimestamp(int(group["date"]), tz=timezone.utc),
                                int(group.get("grpid") or 0),
                                _scaled(measure),
                            )
                        )
                        break
        except (
            AttributeError,
            KeyError,
            OSError,
            OverflowError,
            TypeError,
            ValueError,
        ) as exc:
            raise ExternalServiceError("Error reading Withings measurement groups.") from exc

        matches.sort(key=lambda item: (item[0], item[1]), reverse=True)
        points = [
            DataPoint(
                owner=token.username,
                schema_id=schema_id,
                version=version,
                timestamp=taken_at,
                data={type_name: value},
            )
            for taken_at, _, value in matches[skip : skip + limit]
        ]
        logger.info(
            "Fetched %d %s point(s) for %s", len(points), schema_id, token.username
        )
        return ShimDataPage(points=apply_columns(points, columns), refreshed_token=refreshed)

    @staticmethod
    def _measure_groups(payload: Mapping[str, Any]) -> List[Any]:
        status = payload.get("status")
        if status is None:
            raise ExternalServiceError("Withings returned no request status.")
        if status != 0:
            raise ExternalServiceError(f"Withings API request error: {status}")
        body = payload.get("body")
        if not isinstance(body, dict) or not isinstance(body.get("measuregrps"), list):
            raise ExternalServiceError("Withings returned no measurement groups.")
        return body["measuregrps"]


__all__ = ["DOMAIN", "MEASURE_TYPES", "WithingsAuthorizationEngine", "WithingsShim"]
