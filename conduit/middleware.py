"""
Request diagnostics.

Every HTTP response carries ``X-Response-Time-Ms`` and ``X-Query-Count``.
The query count is what the endpoint tests use to show that article and
comment pages cost the same number of statements whatever their length,
because viewer flags and authors come back in the page query itself.
"""
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Receive, Scope, Send

# Statements executed on behalf of the current request.
query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """Bump ``query_count_var`` for each statement *engine* sends to the database."""
    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


class TimingMiddleware:
    """
    Stamp diagnostics onto HTTP responses.

    Written as plain ASGI: the counter is reset and read in the same task
    that runs the endpoint, so the statements it counts are this request's.
    Lifespan and websocket traffic pass straight through.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        started = time.perf_counter()

        async def send_with_diagnostics(message):
            if message["type"] == "http.response.start":
                elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-response-time-ms", str(elapsed_ms).encode()),
                    (b"x-query-count", str(query_count_var.get()).encode()),
                ]
            await send(message)

        await self.app(scope, receive, send_with_diagnostics)
