"""FastAPI dependencies for operator endpoints."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from fixdispatch.config import Settings, get_settings
from fixdispatch.dispatch.worker import DispatchWorker


async def require_api_key(
    x_api_key: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Require the static operator key when one is configured."""
    if settings.admin_api_key is None:
        return

    expected = settings.admin_api_key.get_secret_value()
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


def get_worker(request: Request) -> DispatchWorker:
    """Return the dispatch worker attached to the application."""
    return request.app.state.worker


OperatorAuth = Annotated[None, Depends(require_api_key)]
Worker = Annotated[DispatchWorker, Depends(get_worker)]
