"""Local GraphQL endpoint backed by the content index."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from graphql import graphql

from contentloom import __version__

if TYPE_CHECKING:
    from collections.abc import Iterator

    from contentloom.dev.reconcile import Reconciler

logger = logging.getLogger(__name__)


def create_app(reconciler: Reconciler) -> FastAPI:
    """Build the dev API. It always serves the schema of the latest successful reconcile."""
    app = FastAPI(title="contentloom dev server", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "version": __version__,
                "documents": await reconciler.indexer.count(),
                "lastIndexedAt": await reconciler.indexer.last_indexed_at(),
            }
        )

    @app.get("/schema.graphql")
    async def schema_sdl() -> PlainTextResponse:
        sdl = await reconciler.indexer.stored_schema()
        if sdl is None:
            return PlainTextResponse("schema not built yet", status_code=503)
        return PlainTextResponse(sdl)

    @app.post("/graphql")
    async def graphql_endpoint(request: Request) -> JSONResponse:
        try:
            payload: Any = await request.json()
        except ValueError:
            return JSONResponse({"errors": [{"message": "Request body must be JSON"}]}, 400)
        if not isinstance(payload, dict) or not isinstance(payload.get("query"), str):
            return JSONResponse({"errors": [{"message": "Missing 'query'"}]}, 400)
        if reconciler.artifact is None:
            return JSONResponse({"errors": [{"message": "Schema not built yet"}]}, 503)

        result = await graphql(
            reconciler.artifact.graphql_schema,
            payload["query"],
            variable_values=payload.get("variables"),
            operation_name=payload.get("operationName"),
            context_value={"index": reconciler.indexer},
        )
        body: dict[str, Any] = {"data": result.data}
        if result.errors:
            body["errors"] = [err.formatted for err in result.errors]
            for err in result.errors:
                logger.debug("GraphQL error: %s", err.message)
        return JSONResponse(body)

    return app


class DevServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the lifecycle supervisor."""

    def install_signal_handlers(self) -> None:
        return

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


async def start_server(app: FastAPI, port: int) -> tuple[DevServer, asyncio.Task[None]]:
    """Serve *app* on localhost:*port* inside the running event loop.

    Returns once the socket is bound.
    """
    server = DevServer(
        uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning", lifespan="off")
    )
    task = asyncio.create_task(server.serve(), name="dev-server")
    while not server.started:
        if task.done():
            # Bind failures end serve() early; surface them here.
            task.result()
            raise OSError(f"Dev server on port {port} stopped during start-up")
        await asyncio.sleep(0.05)
    logger.debug("Dev server listening on %d", port)
    return server, task
