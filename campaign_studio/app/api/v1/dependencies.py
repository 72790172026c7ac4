from typing import Annotated, NoReturn

from fastapi import HTTPException, Request, Security

from ...core.environment import settings
from ...core.errors import OperationError
from ...core.services import Services
from ...core.session import StaticSessionProvider, session_for_api_key
from .api_key import api_key_header


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_sessions(api_key: Annotated[str | None, Security(api_key_header)]) -> StaticSessionProvider:
    return StaticSessionProvider(session_for_api_key(api_key, settings.API_KEY))


def raise_for(error: OperationError) -> NoReturn:
    raise HTTPException(status_code=error.http_status, detail=error.message)
