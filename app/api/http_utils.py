from __future__ import annotations

"""
Luminav • HTTP helpers shared by routers
========================================

- `set_sensitive_cache` / `json_no_store`: responses that must never be cached
  (signed URLs, admin mutations).
- `redirect_no_store`: 302 to a presigned URL; a fresh URL is signed per
  request, so the redirect itself must not be cached past its expiry.
- `sse_response`: `StreamingResponse` wired for Server-Sent Events.
"""

from typing import Any, AsyncIterator, Callable, Optional

from fastapi import Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from starlette.background import BackgroundTask

from app.services.media.progress import SSE_HEADERS, SSE_MEDIA_TYPE


def set_sensitive_cache(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"


def json_no_store(payload: Any, status_code: int = 200) -> JSONResponse:
    """JSON response with strict `no-store` caching."""
    resp = JSONResponse(jsonable_encoder(payload), status_code=status_code)
    set_sensitive_cache(resp)
    return resp


def redirect_no_store(url: str) -> RedirectResponse:
    resp = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    set_sensitive_cache(resp)
    return resp


def sse_response(body: AsyncIterator[str], *, on_close: Optional[Callable[[], None]] = None) -> StreamingResponse:
    """Event stream; `on_close` runs on the event loop once the response is finished or aborted."""
    background = None
    if on_close is not None:
        # must run on the loop, not in the threadpool
        async def _close() -> None:
            on_close()

        background = BackgroundTask(_close)
    return StreamingResponse(body, media_type=SSE_MEDIA_TYPE, headers=dict(SSE_HEADERS), background=background)


__all__ = ["set_sensitive_cache", "json_no_store", "redirect_no_store", "sse_response"]
