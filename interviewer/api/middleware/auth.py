import hmac

from fastapi import HTTPException, Request, status


async def require_access_token(request: Request) -> None:
    """Dependency: require the shared access token when one is configured.

    The token is sent as a header: X-Access-Token
    """
    expected = request.app.state.config_manager.config.server.access_token
    if not expected:
        return

    token = request.headers.get("X-Access-Token")
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required.",
        )
    if not hmac.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token.",
        )
