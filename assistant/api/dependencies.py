"""FastAPI dependencies shared by the endpoints."""

from typing import Annotated, Any

from fastapi import Depends, Request

from assistant.errors import AuthError, InvalidRequestError
from assistant.services.container import AppServices
from assistant.utils.logging import get_logger

logger = get_logger(__name__)


def get_services(request: Request) -> AppServices:
    """Return the service container attached to the running app."""
    return request.app.state.services


async def require_user(request: Request, services: Annotated[AppServices, Depends(get_services)]) -> str:
    """Resolve the caller's user id or fail with 401."""
    user_id = await services.auth.resolve(request)
    if not user_id:
        logger.warning(f"Unauthenticated request to {request.url.path}")
        raise AuthError("Unauthorized")
    return user_id


async def read_json_body(request: Request) -> Any:
    """Parse the request body as JSON, failing with 400 if it is not."""
    try:
        return await request.json()
    except ValueError as e:
        raise InvalidRequestError("Request body must be valid JSON") from e


Services = Annotated[AppServices, Depends(get_services)]
UserId = Annotated[str, Depends(require_user)]
JsonBody = Annotated[Any, Depends(read_json_body)]
