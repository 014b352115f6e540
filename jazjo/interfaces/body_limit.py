"""
Request body cap for every route.

A declared Content-Length is checked up front. Chunked uploads carry no
length, so their body is read up to the cap before the route runs and then
replayed to it unchanged.
"""
import logging
from collections import deque

from starlette.datastructures import Headers
from starlette.responses import JSONResponse

from jazjo.core.errors import PayloadTooLargeError

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length is not None and length.isdigit():
            if int(length) > self.max_bytes:
                await self._reject(scope, receive, send, int(length))
                return
            await self.app(scope, receive, send)
            return

        buffered = deque()
        received = 0
        while True:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > self.max_bytes:
                await self._reject(scope, receive, send, received)
                return
            if not message.get("more_body", False):
                break

        async def replay():
            if buffered:
                return buffered.popleft()
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope, receive, send, size: int):
        error = PayloadTooLargeError()
        logger.warning("Rejected %s %s: body of %s bytes exceeds %s",
                       scope.get("method"), scope.get("path"), size, self.max_bytes)
        response = JSONResponse(status_code=error.status_code, content={"error": error.client_message})
        await response(scope, receive, send)
