"""
FastAPI routes for the delegated access gateway.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import RedirectResponse

from dsu.core.errors import AuthenticationError, InvalidRequestError
from dsu.dependencies import (
    Settings,
    get_authorization_info_store,
    get_authorization_token_store,
    get_credential_codec,
    get_data_store,
    get_shim_registry,
)
from dsu.models.credentials import AuthenticationToken, AuthorizationGrant
from dsu.schemas import AuthorizationCompleteResponse, AuthorizationStartResponse
from dsu.services.authorization import CompleteAuthorization, InitiateAuthorization
from dsu.services.data_read import DEFAULT_NUM_TO_RETURN, DataReadRequest

router = APIRouter()
logger = logging.getLogger(__name__)

AUTH_TOKEN_HEADER = "X-Auth-Token"
BEARER_PREFIX = "bearer "


def _authentication(
    codec: Any, header_token: Optional[str], query_token: Optional[str]
) -> Optional[AuthenticationToken]:
    raw = header_token or query_token
    if not raw:
        return None
    return codec.read_authentication(raw)


def _grant(codec: Any, authorization: Optional[str]) -> Optional[AuthorizationGrant]:
    if not authorization:
        return None
    if not authorization.lower().startswith(BEARER_PREFIX):
        raise AuthenticationError("Only bearer authorization tokens are accepted.")
    return codec.read_grant(authorization[len(BEARER_PREFIX):].strip())


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.api_route("/auth/authorized", methods=["GET", "POST"], status_code=HTTPStatus.OK)
async def start_domain_authorization(
    registry: Annotated[Any, Depends(get_shim_registry)],
    info_store: Annotated[Any, Depends(get_authorization_info_store)],
    token_store: Annotated[Any, Depends(get_authorization_token_store)],
    codec: Annotated[Any, Depends(get_credential_codec)],
    settings: Settings,
    domain: str = Query(..., description="Provider domain to authorize, e.g. fitbit."),
    redirect_to: Optional[str] = Query(
        default=None,
        description="Where to send the user once the provider has been connected.",
    ),
    auth_token: Optional[str] = Query(default=None),
    x_auth_token: Optional[str] = Header(default=None, alias=AUTH_TOKEN_HEADER),
) -> Response:
    """Begin connecting a provider, or report that it is already connected."""
    authentication = _authentication(codec, x_auth_token, auth_token)
    if authentication is None:
        raise AuthenticationError("No authentication credential was provided.")
    if authentication.is_expired():
        raise AuthenticationError("The authentication token has expired.")

    client_url = redirect_to
    if client_url is None and settings.frontend_base_url is not None:
        client_url = str(settings.frontend_base_url)

    info = await InitiateAuthorization(
        username=authentication.username,
        domain=domain,
        client_url=client_url,
        registry=registry,
        info_store=info_store,
        token_store=token_store,
    ).service()
    if info is None:
        return Response(status_code=HTTPStatus.NO_CONTENT)

    payload = AuthorizationStartResponse.from_info(info)
    return Response(
        content=payload.model_dump_json(),
        media_type="application/json",
        status_code=HTTPStatus.OK,
    )


@router.get("/auth/oauth/external_authorization")
async def complete_domain_authorization(
    request: Request,
    registry: Annotated[Any, Depends(get_shim_registry)],
    info_store: Annotated[Any, Depends(get_authorization_info_store)],
    token_store: Annotated[Any, Depends(get_authorization_token_store)],
    settings: Settings,
    state: Optional[str] = Query(default=None, description="Authorization correlation id."),
) -> Response:
    """Provider callback target: store the issued token and send the user onwards."""
    if not state:
        raise InvalidRequestError("The callback is missing its state parameter.")
    callback = {
        key: value for key, value in request.query_params.items() if key != "state"
    }
    ttl = settings.oauth.state_ttl_seconds
    completed = await CompleteAuthorization(
        authorize_id=state,
        callback=callback,
        registry=registry,
        info_store=info_store,
        token_store=token_store,
        state_ttl=timedelta(seconds=ttl) if ttl else None,
    ).service()

    if completed.client_url:
        return RedirectResponse(
            url=completed.client_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    payload = AuthorizationCompleteResponse(domain=completed.domain)
    return Response(
        content=payload.model_dump_json(),
        media_type="application/json",
        status_code=HTTPStatus.OK,
    )


@router.get("/data/{schema_id}/{version}/data", status_code=HTTPStatus.OK)
async def read_data(
    schema_id: str,
    version: int,
    registry: Annotated[Any, Depends(get_shim_registry)],
    token_store: Annotated[Any, Depends(get_authorization_token_store)],
    data_store: Annotated[Any, Depends(get_data_store)],
    codec: Annotated[Any, Depends(get_credential_codec)],
    owner: Optional[str] = Query(default=None),
    t_start: Optional[datetime] = Query(default=None),
    t_end: Optional[datetime] = Query(default=None),
    column_list: Optional[str] = Query(
        default=None, description="Comma-separated dotted paths to keep."
    ),
    num_to_skip: int = Query(default=0),
    num_to_return: int = Query(default=DEFAULT_NUM_TO_RETURN),
    auth_token: Optional[str] = Query(default=None),
    x_auth_token: Optional[str] = Header(default=None, alias=AUTH_TOKEN_HEADER),
    authorization: Optional[str] = Header(default=None),
) -> dict:
    """Read one page of a user's data for a schema."""
    columns = [column.strip() for column in (column_list or "").split(",") if column.strip()]
    result = await DataReadRequest(
        schema_id=schema_id,
        version=version,
        registry=registry,
        token_store=token_store,
        data_store=data_store,
        authentication=_authentication(codec, x_auth_token, auth_token),
        grant=_grant(codec, authorization),
        owner=owner,
        start=_as_utc(t_start),
        end=_as_utc(t_end),
        columns=columns,
        skip=num_to_skip,
        limit=num_to_return,
    ).service()
    return result.to_payload()


__all__ = ["router"]
