"""Helpers shared by the provider shims."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from dsu.core.errors import InvalidRequestError, NotFoundError
from dsu.models.authorization import AuthorizationToken
from dsu.models.data import Schema

logger = logging.getLogger(__name__)

NAMESPACE = "omh"
SCHEMA_VERSION = 1


@dataclass(frozen=True)
class SchemaId:
    namespace: str
    domain: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}:{self.domain}:{self.name}"


def parse_schema_id(schema_id: str) -> SchemaId:
    """Split ``<namespace>:<domain>:<type>``; anything else is a validation error."""
    if not schema_id:
        raise InvalidRequestError("The schema ID is missing.")
    parts = schema_id.split(":")
    if len(parts) != 3 or not all(parts):
        raise InvalidRequestError(
            f"The schema ID is not of the form <namespace>:<domain>:<type>: {schema_id}"
        )
    return SchemaId(*parts)


def schema_id_for(domain: str, name: str) -> str:
    return f"{NAMESPACE}:{domain}:{name}"


def single_value_schema(schema_id: str, field_type: str, doc: str) -> Schema:
    """A schema whose points carry exactly one numeric field."""
    return Schema(
        schema_id=schema_id,
        version=SCHEMA_VERSION,
        definition={
            "type": "object",
            "doc": doc,
            "fields": [{"name": field_type, "type": "number", "doc": doc}],
        },
    )


class SchemaCatalog:
    """The fixed set of schemas one shim serves, all at version 1."""

    def __init__(self, domain: str, fields: Mapping[str, str]) -> None:
        self._domain = domain
        self._schemas: Dict[str, Schema] = {
            schema_id_for(domain, name): single_value_schema(
                schema_id_for(domain, name), name, doc
            )
            for name, doc in fields.items()
        }

    def ids(self) -> List[str]:
        return sorted(self._schemas)

    def versions(self, schema_id: str) -> List[int]:
        if schema_id not in self._schemas:
            return []
        return [SCHEMA_VERSION]

    def get(self, schema_id: str, version: int) -> Optional[Schema]:
        schema = self._schemas.get(schema_id)
        if schema is None or schema.version != version:
            return None
        return schema

    def require(self, schema_id: str, version: int) -> Tuple[Schema, str]:
        """Return the schema and its field name or raise ``NotFoundError``."""
        parsed = parse_schema_id(schema_id)
        if parsed.domain != self._domain:
            raise InvalidRequestError(
                f"The schema ID {schema_id} is not served by {self._domain}."
            )
        schema = self.get(schema_id, version)
        if schema is None:
            raise NotFoundError(f"Unknown schema {schema_id} version {version}.")
        return schema, parsed.name


async def ensure_fresh_token(
    token: AuthorizationToken, engine
) -> Tuple[AuthorizationToken, Optional[AuthorizationToken]]:
    """Return ``(usable, refreshed)``; ``refreshed`` is set only when a new token was minted."""
    if not token.is_expired():
        return token, None
    logger.info("Refreshing expired %s token for %s", token.domain, token.username)
    refreshed = await engine.refresh(token)
    return refreshed, refreshed


__all__ = [
    "NAMESPACE",
    "SCHEMA_VERSION",
    "SchemaCatalog",
    "SchemaId",
    "ensure_fresh_token",
    "parse_schema_id",
    "schema_id_for",
    "single_value_schema",
]
