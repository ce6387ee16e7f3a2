# multipost/middleware.py
import time
import uuid

import structlog
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger("http")

class RequestIdMiddleware:
    """Binds request_id/path/method for every log line of a request and echoes the id back."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers") or [])
        req_id = incoming.get(self.header_name.lower().encode(), b"").decode() or uuid.uuid4().hex
        path, method = scope.get("path", ""), scope.get("method", "")
        clear_contextvars()
        bind_contextvars(request_id=req_id, path=path, method=method)
        start = time.perf_counter()
        status_code = 500

        async def send_with_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[self.header_name] = req_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_id)
        except Exception as exc:
            logger.exception("http_request_exception", error=str(exc))
            raise
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info("http_request_finished", status_code=status_code, duration_ms=duration_ms)
            clear_contextvars()
