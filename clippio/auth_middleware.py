"""
Shared-secret authentication middleware for the delegate worker.

All /clippio/* endpoints require a valid X-Delegate-Secret header matching
the DELEGATE_SHARED_SECRET environment variable. The bot attaches this
header when it delegates a video request.
"""

import secrets

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import config

PROTECTED_PREFIX = "/clippio"


class DelegateAuthMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests to /clippio/* endpoints."""

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(PROTECTED_PREFIX):
            return await call_next(request)

        secret = config.get_delegate_secret()
        if not secret:
            # In development without the secret set, allow all traffic
            if config.ENVIRONMENT == "development":
                return await call_next(request)
            return JSONResponse(
                status_code=500,
                content={"error": "DELEGATE_SHARED_SECRET not configured", "message": "Worker auth is not set up"},
            )

        # Constant-time compare avoids timing attacks
        provided = request.headers.get("X-Delegate-Secret", "")
        if not secrets.compare_digest(provided, secret):
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "message": "Invalid or missing delegate secret"},
            )

        return await call_next(request)
