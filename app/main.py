from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import get_settings
from relay.errors import ConfigurationError, RelayError, UpstreamProtocolError
from relay.service import RelayService, get_relay_service


settings = get_settings()

logging.basicConfig(
    level=settings.log_level, format="[%(asctime)s] %(levelname)s - %(message)s"
)
logger = logging.getLogger("relay")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to serve without upstream credentials.
    get_settings().require_api_key()
    yield


app = FastAPI(title="Chat Relay", version="1.0.0", lifespan=lifespan)


ALLOWED_METHODS = ["GET", "POST", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
    "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("Received %s request to %s", request.method, request.url.path)
    response = await call_next(request)
    logger.info(
        "%s %s -> %s", request.method, request.url.path, response.status_code
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=ALLOWED_METHODS,
    allow_headers=ALLOWED_HEADERS,
)


# Registered last so it is the outermost layer: every OPTIONS request ends here
# with 200 and no body, and every response permits any origin.
@app.middleware("http")
async def permit_any_origin(request: Request, call_next):
    if request.method == "OPTIONS":
        logger.info("Received OPTIONS request to %s", request.url.path)
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


class ChatRequest(BaseModel):
    message: Optional[str] = Field(None, description="User's latest message")
    prompt: Optional[str] = Field(
        None, description="Alternate key for the message text"
    )

    @property
    def text(self) -> str:
        if self.message is not None:
            return self.message
        return self.prompt or ""


class ChatResponse(BaseModel):
    response: str
    time: str


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if isinstance(exc, UpstreamProtocolError):
        logger.error(
            "%s %s failed: %s (upstream status=%s)",
            request.method,
            request.url.path,
            exc,
            exc.upstream_status,
        )
    else:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("Invalid body for %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid JSON"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        message = "Not found"
    elif exc.status_code == 405:
        message = "Method not allowed"
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code, content={"error": message}, headers=exc.headers
    )


router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
def chat(req: ChatRequest, relay: RelayService = Depends(get_relay_service)) -> Dict[str, str]:
    try:
        result = relay.submit(req.text)
    except RelayError:
        raise
    except Exception as e:
        logger.exception("Chat processing failed: %s", e)
        # Full traceback is in server logs only
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"response": result.reply, "time": result.formatted_time()}


@router.get("/health")
def health(relay: RelayService = Depends(get_relay_service)) -> Dict[str, str]:
    return relay.health_check()


@router.post("/reset")
def reset(relay: RelayService = Depends(get_relay_service)) -> Dict[str, str]:
    return relay.reset()


app.include_router(router, prefix="/api")
# Also served without the /api prefix.
app.include_router(router)


def run() -> None:
    import uvicorn

    current = get_settings()
    try:
        current.require_api_key()
    except ConfigurationError as exc:
        logger.critical("%s", exc)
        raise SystemExit(1)

    logger.info("Server starting on http://%s:%s", current.host, current.port)
    logger.info("Endpoints:")
    logger.info("  POST /api/chat  - Chat with AI")
    logger.info("  POST /api/reset - Reset the conversation")
    logger.info("  GET  /api/health - Health check")
    uvicorn.run(app, host=current.host, port=current.port)


if __name__ == "__main__":
    run()
