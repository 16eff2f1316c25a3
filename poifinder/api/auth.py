import secrets

from fastapi import Header, HTTPException, Request


async def require_api_key(request: Request, x_api_key: str = Header(default="", alias="X-API-Key")):
    """Checks `X-API-Key` against the configured key of the running services."""
    expected = request.app.state.services.settings.api_key
    if not expected or not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="unauthorized")
