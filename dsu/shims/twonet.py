"""
2net shim: readings from partner-registered medical devices.

2net authenticates the gateway with a partner key pair, so there is no user
consent step. Initiating authorization registers a 2net user and one of each
supported device; the resulting GUIDs become the token extras used on every
data call.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from dsu.auth.direct import DirectAuthorizationEngine
from dsu.core.errors import ExternalServiceError, InvalidRequestError
from dsu.models.authorization import AuthorizationToken
from dsu.models.data import DataPoint, Schema, ShimDataPage, apply_columns
from dsu.shims.util import SchemaCatalog
from dsu.utils.http import ProviderHttpClient, parse_json

logger = logging.getLogger(__name__)

DOMAIN = "twonet"
API_BASE = "https://twonetcom.qualcomm.com/kernel/partner/"
USER_EXTRA = "user"


@dataclass(frozen=True)
class Device:
    key: str
    make: str
    model: str
    serial_number: str


DEVICES = (
    Device("entra_glucometer", "Entra", "MGH-BT1", "2NET00001"),
    Device("nonin_pulseoximeter", "Nonin", "9560 Onyx II", "2NET00002"),
    Device("ad_weight_scale", "A&D", "UC-321PBT", "2NET00003"),
    Device("ad_blood_pressure", "A&D", "UA-767PBT", "2NET00004"),
    Device("asthmapolis_spiroscout", "Asthmapolis", "Rev B", "2NET00005"),
)


@dataclass(frozen=True)
class Measure:
    device_key: str
    measure_type: str
    measure_name: str
    description: str


MEASURES: Dict[str, Measure] = {
    "glucose_mg_per_dl": Measure(
        "entra_glucometer", "blood", "glucose", "Glucose level in mg/dL"
    ),
    "temperature_f": Measure(
        "entra_glucometer",
        "environment",
        "temperature",
        "Environment ambient temperature in Fahrenheit",
    ),
    "nonin_pulse_bpm": Measure(
        "nonin_pulseoximeter", "blood", "pulse", "Pulse rate in beats per minute"
    ),
    "spo2_percent": Measure(
        "nonin_pulseoximeter", "blood", "spo2", "Blood oxygen level percentage"
    ),
    "weight_lbs": Measure("ad_weight_scale", "body", "weight", "Weight in pounds"),
    "ad_pulse_bpm": Measure(
        "ad_blood_pressure", "blood", "pulse", "Pulse rate in beats per minute"
    ),
    "systolic_mmhg": Measure(
        "ad_blood_pressure", "blood", "systolic", "Systolic pressure in mmHg"
    ),
    "diastolic_mmhg": Measure(
        "ad_blood_pressure", "blood", "diastolic", "Diastolic pressure in mmHg"
    ),
    "map_mmhg": Measure(
        "ad_blood_pressure", "blood", "map", "Mean arterial pressure in mmHg"
    ),
    "inhale_count": Measure(
        "asthmapolis_spiroscout", "breath", "inhale", "Inhale count"
    ),
}


class TwoNetShim:
    def __init__(
        self,
        *,
        key: str,
        secret: str,
        callback_url: str,
        http: ProviderHttpClient,
    ) -> None:
        if not key or not secret:
            raise ValueError("2net partner credentials are required.")
        credentials = base64.b64encode(f"{key}:{secret}".encode("utf-8")).decode("ascii")
        self._authorization = f"Basic {credentials}"
        self._http = http
        self._engine = DirectAuthorizationEngine(
            domain=DOMAIN,
            callback_url=callback_url,
            preauthorize=self._register,
        )
        self._catalog = SchemaCatalog(
            DOMAIN, {name: measure.description for name, measure in MEASURES.items()}
        )

    @property
    def domain(self) -> str:
        return DOMAIN

    def authorization_engine(self) -> DirectAuthorizationEngine:
        return self._engine

    def schema_ids(self) -> List[str]:
        return self._catalog.ids()

    def schema_versions(self, schema_id: str) -> List[int]:
        return self._catalog.versions(schema_id)

    def schema(self, schema_id: str, version: int) -> Optional[Schema]:
        return self._catalog.get(schema_id, version)

    async def _call(self, path: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        response = await self._http.post(
            API_BASE + path,
            json_body=body,
            headers={"Authorization": self._authorization, "Accept": "application/json"},
        )
        return parse_json(response)

    async def register_user(self) -> str:
        guid = str(uuid4())
        await self._call("register", {"registerRequest": {"guid": guid}})
        return guid

    async def register_device(self, user_guid: str, device: Device) -> str:
        payload = await self._call(
            "user/track/register",
            {
                "trackRegistrationRequest": {
                    "guid": user_guid,
                    "type": "2net",
                    "registerType": "properties",
                    "properties": {
                        "property": [
                            {"name": "make", "value": device.make},
                            {"name": "model", "value": device.model},
                            {"name": "serialNumber", "value": device.serial_number},
                        ]
                    },
                }
            },
        )
        try:
            return str(payload["trackRegistrationResponse"]["trackDetail"]["guid"])
        except (KeyError, TypeError) as exc:
            raise ExternalServiceError("2net device registration returned no guid.") from exc

    async def _register(self, username: str) -> Dict[str, Any]:
        user_guid = await self.register_user()
        state: Dict[str, Any] = {USER_EXTRA: user_guid}
        for device in DEVICES:
            state[device.key] = await self.register_device(user_guid, device)
        logger.info("Registered 2net user and %d devices for %s", len(DEVICES), username)
        return state

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
        measure = MEASURES[type_name]
        user_guid = token.extras.get(USER_EXTRA)
        track_guid = token.extras.get(measure.device_key)
        if not user_guid or not track_guid:
            raise InvalidRequestError(
                "The stored 2net token is missing device registrations; re-authorize the domain."
            )

        request: Dict[str, Any] = {"guid": user_guid, "trackGuid": track_guid}
        window: Dict[str, int] = {}
        if start is not None:
            window["startDate"] = int(start.timestamp())
        if end is not None:
            window["endDate"] = int(end.timestamp())
        if window:
            request["filter"] = window

        payload = await self._call("user/track/filtered", {"trackRequest": request})
        try:
            measures = payload["trackResponse"]["measures"]["measure"]
        except (KeyError, TypeError) as exc:
            raise ExternalServiceError("2net returned no measures.") from exc
        if isinstance(measures, dict):
            measures = [measures]

        readings = []
        try:
            for entry in measures:
                readings.append(
                    (
                        datetime.fromtimestamp(int(entry["time"]), tz=timezone.utc),
                        float(entry[measure.measure_type][measure.measure_name]),
                    )
                )
        except (KeyError, OSError, OverflowError, TypeError, ValueError) as exc:
            raise ExternalServiceError("Error reading 2net device data.") from exc

        readings.sort(key=lambda reading: reading[0], reverse=True)
        points = [
            DataPoint(
                owner=token.username,
                schema_id=schema_id,
                version=version,
                timestamp=taken_at,
                data={type_name: value},
            )
            for taken_at, value in readings[skip : skip + limit]
        ]
        return ShimDataPage(points=apply_columns(points, columns))


__all__ = ["DEVICES", "DOMAIN", "MEASURES", "TwoNetShim"]
