# promptsync/app.py
"""
Prompt Sync API.

REST endpoints under /api/prompts and a live channel on /ws (and /).

Live channel protocol for client authors:
- on connect the server sends {"type": "initial_data", "data": [...]} before
  any other event;
- then one {"type": ..., "data": ...} envelope per committed change
  (prompt_created, prompt_updated, prompt_deleted, prompts_imported);
- every HEARTBEAT_INTERVAL_SECONDS the server sends {"type": "ping"} as a
  text frame. This is an application frame, not a WebSocket protocol ping,
  so browsers do not answer it on their own: clients must reply with
  {"type": "pong"} before the next ping or they are disconnected.
"""
import os
import time
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

# Load .env BEFORE any promptsync imports (they read env vars at import time)
from dotenv import load_dotenv
load_dotenv(override=False)

from fastapi import Body, FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse, Response, PlainTextResponse

from promptsync import monitoring
from promptsync.db import DATABASE_URL
from promptsync.errors import E_INTERNAL, MalformedInputError, PromptSyncError, ValidationError
from promptsync.realtime.gateway import SyncGateway
from promptsync.schemas import PromptIn
from promptsync.store import PromptStore

HEARTBEAT_INTERVAL_SECONDS = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "30"))
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", "5"))
SEED_SAMPLE_DATA = os.getenv("SEED_SAMPLE_DATA", "true").lower() in ("1", "true", "yes")
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.getcwd(), "public"))


def _log_loop_exception(loop, context):
    # keep serving; unexpected task failures only get logged
    exc = context.get("exception")
    monitoring.logger.error("Unhandled exception in event loop",
                            exc_info=exc, extra={"context": context.get("message")})


def create_app(
    database_url: Optional[str] = None,
    heartbeat_interval: float = None,
    send_timeout: float = None,
    seed_sample_data: bool = None,
    store: Optional[PromptStore] = None,
) -> FastAPI:
    """Build the application with its own store and sync gateway."""
    store = store or PromptStore(database_url or DATABASE_URL)
    gateway = SyncGateway(
        store,
        heartbeat_interval=HEARTBEAT_INTERVAL_SECONDS if heartbeat_interval is None else heartbeat_interval,
        send_timeout=SEND_TIMEOUT_SECONDS if send_timeout is None else send_timeout,
    )
    seed = SEED_SAMPLE_DATA if seed_sample_data is None else seed_sample_data

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
        if seed:
            store.seed_if_empty()
        gateway.start()
        monitoring.logger.info("Sync gateway started", extra={"heartbeat_interval": gateway.heartbeat.interval})
        try:
            yield
        finally:
            await gateway.stop()

    app = FastAPI(title="Prompt Sync API", lifespan=lifespan)
    app.state.store = store
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # -----------------------------------------------------------------------
    # Metrics middleware
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        endpoint = request.url.path
        method = request.method
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        except Exception:
            monitoring.logger.exception("Unhandled exception in request", extra={"path": endpoint})
            raise
        finally:
            monitoring.observe_request(start, endpoint, method, status)

    # -----------------------------------------------------------------------
    # Error mapping
    # -----------------------------------------------------------------------
    @app.exception_handler(PromptSyncError)
    async def prompt_sync_error_handler(request: Request, exc: PromptSyncError):
        if exc.status_code >= 500:
            monitoring.logger.error("Store failure", extra={"path": request.url.path, "details": exc.details})
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        # unparseable or mistyped bodies answer 400 like every other input error
        if request.url.path == "/api/prompts/import":
            error = MalformedInputError("Import body must be a JSON array")
        else:
            error = ValidationError("Invalid request body",
                                    details={"fields": [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]})
        return JSONResponse(status_code=error.status_code, content=error.to_body())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        monitoring.logger.exception("Unexpected error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"success": False, "error_code": E_INTERNAL, "message": "Internal server error"},
        )

    # -----------------------------------------------------------------------
    # REST endpoints
    # -----------------------------------------------------------------------
    @app.get("/api/prompts")
    def list_prompts():
        return JSONResponse(content=[p.model_dump(mode="json") for p in store.list()])

    @app.get("/api/categories")
    def list_categories():
        return store.list_categories()

    @app.post("/api/prompts", status_code=201)
    async def create_prompt(req: PromptIn):
        prompt = await gateway.create_prompt(req.title, req.content, req.category)
        return {"success": True, "id": prompt.id}

    @app.post("/api/prompts/import")
    async def import_prompts(payload: Any = Body(None)):
        """
        POST /api/prompts/import
        Body: [ {"title": "...", "content": "...", "category": "..."}, ... ]
        All rows are inserted or none.
        """
        count = await gateway.import_prompts(payload)
        monitoring.logger.info("Imported prompts", extra={"count": count})
        return {"success": True, "count": count}

    @app.put("/api/prompts/{prompt_id}")
    async def update_prompt(prompt_id: int, req: PromptIn):
        await gateway.update_prompt(prompt_id, req.title, req.content, req.category)
        return {"success": True}

    @app.delete("/api/prompts/{prompt_id}")
    async def delete_prompt(prompt_id: int):
        await gateway.delete_prompt(prompt_id)
        return {"success": True}

    # -----------------------------------------------------------------------
    # Live channel
    # -----------------------------------------------------------------------
    async def prompts_socket(websocket: WebSocket):
        await websocket.accept()
        connection = await gateway.connect(websocket)
        if connection.closed:
            return
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    monitoring.logger.debug("Ignoring binary frame", extra={"connection_id": connection.id})
                    continue
                gateway.handle_message(connection, text)
        finally:
            await gateway.disconnect(connection)

    app.add_api_websocket_route("/ws", prompts_socket)
    app.add_api_websocket_route("/", prompts_socket)

    @app.get("/health")
    async def health():
        return {"status": "ok", "connections": len(gateway.registry)}

    @app.get("/metrics")
    async def metrics():
        if not monitoring.PROMETHEUS_ENABLED:
            return PlainTextResponse("Prometheus disabled", status_code=404)
        payload, content_type = monitoring.prometheus_metrics_response()
        return Response(content=payload, media_type=content_type)

    # Static frontend last so API and socket routes win
    if os.path.isdir(STATIC_DIR):
        app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")

    return app


app = create_app()


def main():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "5000")))
