from __future__ import annotations

"""
# Luminav — Strip `Server` header (pure ASGI)

Pure ASGI so event-stream responses pass through unbuffered and their
background tasks (SSE consumer detach) still run on disconnect.
"""

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send


class StripServerHeaderMiddleware:
    """Remove the `Server` header to avoid leaking implementation details."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        async def _send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers = MutableHeaders(scope=message)
                if "server" in headers:
                    del headers["server"]
            await send(message)

        await self.app(scope, receive, _send_wrapper)


__all__ = ["StripServerHeaderMiddleware"]
