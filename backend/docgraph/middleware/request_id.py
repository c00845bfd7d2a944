"""Request ID middleware: attaches a unique ID to every request/response.

Pure ASGI so the header survives error responses. The id is also exposed
to handlers as ``request.state.request_id`` and echoed in envelope meta.
"""

import uuid
from typing import Any

from starlette.types import ASGIApp, Receive, Scope, Send

HEADER = b"x-request-id"


class RequestIDMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = next(
            (value.decode("latin-1") for name, value in scope.get("headers", []) if name == HEADER),
            "",
        ) or uuid.uuid4().hex
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_id(message: Any) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), (HEADER, request_id.encode("latin-1"))]
            await send(message)

        await self.app(scope, receive, send_with_id)
