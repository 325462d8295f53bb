"""
Connect flow routes.

``/connect`` sends the user to the aggregator's authorization page and
``/connect/callback`` receives the authorization code it redirects back with.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from fintrack.connect.service import complete_connection
from fintrack.core.context import AppContext, get_context
from fintrack.errors import FintrackError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/connect", tags=["connect"])


def _callback_url(request: Request) -> str:
    return str(request.url_for("connect_callback"))


@router.get("")
async def connect(request: Request, context: AppContext = Depends(get_context)):
    """Redirect to the aggregator's authorization page."""
    location = context.client.auth_link(_callback_url(request))
    return RedirectResponse(location, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/callback", name="connect_callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    scope: Optional[str] = None,
    error: Optional[str] = None,
    context: AppContext = Depends(get_context),
):
    """
    Complete the authorization flow.

    Answers 400 when the provider reported an error or parameters are
    missing, 500 when the code exchange or the follow-up calls fail.
    """
    if error is not None:
        logger.warning("connect.provider_error", error=error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    if not code or not scope:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'code' and 'scope' query parameters must be provided",
        )

    try:
        await complete_connection(context, code, _callback_url(request))
    except FintrackError as e:
        logger.error(
            "connect.failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to connect provider: {e}",
        )

    return RedirectResponse(
        str(request.url_for("index")), status_code=status.HTTP_307_TEMPORARY_REDIRECT
    )
