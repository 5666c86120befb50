"""
Authentication routes for the Azure AD v2 strategy.

This module exposes the OAuth 2.0 authorization code flow over HTTP:
the request phase redirects to Microsoft, the callback phase returns the
auth hash, and failures are routed to /auth/failure.
"""

import html
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from azure_ad_v2.auth.strategy import AzureActiveDirectoryV2Strategy
from azure_ad_v2.auth.utils import INVALID_EMAIL

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)

FAILURE_MESSAGES = {
    INVALID_EMAIL: "Invalid Email Domain or Email Not Authorized",
    "csrf_detected": "Invalid state parameter. This may be a CSRF attack or expired session.",
    "invalid_credentials": "The identity provider rejected the sign-in request.",
    "timeout": "The identity provider did not respond in time.",
    "failed_to_connect": "Unable to communicate with the identity provider.",
    "access_denied": "Sign-in was cancelled or access was denied.",
    "missing_code": "Missing authorization code in the callback.",
}


def _build_strategy(request: Request, strategy_name: str) -> AzureActiveDirectoryV2Strategy:
    settings = request.app.state.settings
    if strategy_name != settings.STRATEGY_NAME:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown strategy")

    return AzureActiveDirectoryV2Strategy.from_request(
        request,
        settings,
        transport=getattr(request.app.state, "oauth_transport", None),
    )


# =============================================================================
# Failure Endpoint
# =============================================================================

@auth_router.get("/failure", response_class=HTMLResponse)
async def failure(request: Request, message: str = "unknown_error", strategy: str = ""):
    """
    Render the failure page the callback redirects to.

    Query Parameters:
        message: Short failure reason (e.g. invalid_email)
        strategy: Name of the strategy that failed
    """
    status_code = status.HTTP_403_FORBIDDEN if message == INVALID_EMAIL else status.HTTP_401_UNAUTHORIZED
    return _render_error_page(
        title="Access Denied" if message == INVALID_EMAIL else "Authentication Failed",
        message=FAILURE_MESSAGES.get(message, "Authentication failed. Please try again."),
        retry_path=f"/auth/{strategy}" if strategy else None,
        status_code=status_code,
    )


# =============================================================================
# Request Phase
# =============================================================================

@auth_router.get("/{strategy_name}", response_class=RedirectResponse)
async def request_phase(strategy_name: str, request: Request):
    """
    Redirect to the Microsoft authorize endpoint.

    Query Parameters:
        prompt: Optional prompt value (login, consent, select_account, ...)
        scope: Optional scope overriding the configured scope
    """
    strategy = _build_strategy(request, strategy_name)
    authorization_url = strategy.request_phase()
    return RedirectResponse(url=authorization_url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Callback Phase
# =============================================================================

@auth_router.get("/{strategy_name}/callback")
async def callback_phase(strategy_name: str, request: Request):
    """
    Handle the redirect back from Microsoft.

    Returns:
        JSON auth hash ({provider, uid, info, extra}) on success, otherwise a
        redirect to /auth/failure?message=<reason>&strategy=<name>
    """
    strategy = _build_strategy(request, strategy_name)
    outcome = await strategy.callback_phase()

    if not outcome.success:
        logger.info(f"Routing failed callback to failure endpoint: {outcome.reason}")
        query = urlencode({"message": outcome.reason, "strategy": strategy.name})
        return RedirectResponse(url=f"/auth/failure?{query}", status_code=status.HTTP_302_FOUND)

    return JSONResponse(content=outcome.auth.model_dump())


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_error_page(
    title: str,
    message: str,
    retry_path: Optional[str] = None,
    status_code: int = 400
) -> HTMLResponse:
    """
    Render error page for authentication failures.

    Args:
        title: Error title
        message: Error message (no PII)
        retry_path: Where the retry button points, or None to hide it
        status_code: HTTP status code

    Returns:
        HTMLResponse with error information
    """
    retry_button = f"""
        <a href="{html.escape(retry_path)}" class="button">
            Try Again
        </a>
    """ if retry_path else ""

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{html.escape(title)}</title>
        <style>
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                display: flex;
                align-items: center;
                justify-content: center;
                min-height: 100vh;
                margin: 0;
            }}
            .container {{
                max-width: 500px;
                padding: 40px;
                text-align: center;
            }}
            .message {{
                color: #6b7280;
                margin-bottom: 32px;
            }}
            .button {{
                background: #2563eb;
                color: white;
                padding: 14px 32px;
                border-radius: 8px;
                text-decoration: none;
            }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>{html.escape(title)}</h1>
            <p class="message">{html.escape(message)}</p>
            {retry_button}
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=status_code)
