"""Normalized data points and schema descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from dsu.models.authorization import AuthorizationToken


class Schema(BaseModel):
    """A versioned description of one kind of data point."""

    model_config = ConfigDict(frozen=True)

    schema_id: str
    version: int
    definition: Dict[str, Any]


class DataPoint(BaseModel):
    """One normalized measurement, owned by a user and typed by a schema id."""

    owner: str
    schema_id: str
    version: int
    timestamp: datetime
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "metadata": {
                "owner": self.owner,
                "schema_id": self.schema_id,
                "version": self.version,
                "timestamp": self.timestamp.isoformat(),
            },
            "data": self.data,
        }


@dataclass(slots=True)
class ShimDataPage:
    """Points fetched from a provider, plus the token if the shim had to refresh it."""

    points: List[DataPoint] = field(default_factory=list)
    refreshed_token: Optional[AuthorizationToken] = None


@dataclass(slots=True)
class DataReadResult:
    data: List[DataPoint]
    count: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "metadata": {"count": self.count},
            "data": [point.to_payload() for point in self.data],
        }


_MISSING = object()


def _lookup(data: Dict[str, Any], path: Sequence[str]) -> Any:
    current: Any = data
    for part in path:
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _assign(target: Dict[str, Any], path: Sequence[str], value: Any) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def project_columns(
    data: Dict[str, Any], columns: Optional[Iterable[str]]
) -> Dict[str, Any]:
    """Keep only the dotted ``columns`` paths of ``data``; no columns keeps everything."""
    if not columns:
        return data
    projected: Dict[str, Any] = {}
    for column in columns:
        path = [part for part in column.split(".") if part]
        if not path:
            continue
        value = _lookup(data, path)
        if value is not _MISSING:
            _assign(projected, path, value)
    return projected


def apply_columns(
    points: Iterable[DataPoint], columns: Optional[Iterable[str]]
) -> List[DataPoint]:
    columns = list(columns or [])
    if not columns:
        return list(points)
    return [
        point.model_copy(update={"data": project_columns(point.data, columns)})
        for point in points
    ]


__all__ = [
    "DataPoint",
    "DataReadResult",
    "Schema",
    "ShimDataPage",
    "apply_columns",
    "project_columns",
]
