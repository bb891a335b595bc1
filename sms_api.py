#!/usr/bin/env python3
"""
FastAPI SMS API for ZTE LTE routers
Logs in to the router on every request and returns the stored SMS as JSON
"""

import logging
import os
import time
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from sms_messages import Message, parse_int
from zte_sms import FetchError, RouterConfig, RouterError, fetch_messages, load_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDR = "127.0.0.1:8080"

app = FastAPI(
    title="SMS API",
    description="API for reading SMS from ZTE LTE routers",
    version="1.0.0"
)


# Request-Logging-Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"[REQUEST] {request.method} {request.url.path} from {client_ip}")
        if request.query_params:
            safe_params = dict(request.query_params)
            if 'password' in safe_params:
                safe_params['password'] = '***'
            logger.debug(f"[REQUEST] Query parameters: {safe_params}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"[RESPONSE] Status {response.status_code} - {process_time:.3f}s")

        return response


def get_cors_origins() -> List[str]:
    """Allowed CORS origins from CORS_ORIGINS (comma separated), default: all"""
    cors_env = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip() for o in cors_env.split(",") if o.strip()]
    return origins or ["*"]


app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_methods=["GET"],
    allow_headers=["*"],
)


def parse_query_param(value: Optional[str], name: str, default: int, minimum: int, maximum: int) -> int:
    """
    Parses an integer query parameter; missing or empty means default

    Raises:
        HTTPException: 400 if value is not an integer in [minimum, maximum]
    """
    if value is None or value == "":
        return default

    try:
        number = parse_int(value)
    except ValueError:
        number = None
    if number is None or not minimum <= number <= maximum:
        logger.warning(f"[FASTAPI-SERVER] Validation error: {name}={value!r}")
        raise HTTPException(status_code=400, detail=f"Invalid '{name}' parameter")
    return number


@app.get("/getSMS", response_model=List[Message])
def get_sms(
    page: Optional[str] = Query(None, description="Page number, 0-100 (default: 0)"),
    per_page: Optional[str] = Query(None, alias="perPage", description="Messages per page, 1-1000 (default: 500)"),
    mem_store: Optional[str] = Query(None, alias="memStore", description="Message storage, 0-2 (default: 1)"),
    tag: Optional[str] = Query(None, description="Tag filter, 0-10 (default: 10 = all)")
):
    """
    Reads SMS from the router

    Example:
        GET /getSMS?page=0&perPage=50&memStore=1&tag=10
    """
    page = parse_query_param(page, "page", 0, 0, 100)
    per_page = parse_query_param(per_page, "perPage", 500, 1, 1000)
    mem_store = parse_query_param(mem_store, "memStore", 1, 0, 2)
    tag = parse_query_param(tag, "tag", 10, 0, 10)

    router_config = RouterConfig.from_config(load_config(os.getenv("CONFIG_PATH")))
    if router_config is None:
        logger.error("[FASTAPI-SERVER] Configuration error: router URL or password not set")
        raise HTTPException(status_code=500, detail="Server configuration error")

    logger.info(f"[ROUTER] Reading SMS from {router_config.url} "
                f"(page={page}, perPage={per_page}, memStore={mem_store}, tag={tag})")

    try:
        messages = fetch_messages(router_config, page, per_page, mem_store, tag)
    except FetchError as e:
        logger.error(f"[ROUTER] GetSMS error: {e}")
        raise HTTPException(status_code=503, detail="Failed to retrieve SMS messages")
    except RouterError as e:
        logger.error(f"[ROUTER] Login error: {type(e).__name__}: {e}")
        raise HTTPException(status_code=401, detail="Authentication failed")

    logger.info(f"✓ {len(messages)} SMS retrieved")
    return messages


@app.get("/health")
async def health_check():
    """Health-check endpoint"""
    logger.debug("Health-check called")
    return {"status": "ok", "service": "SMS API"}


def get_listen_address() -> tuple[str, int]:
    """
    Listen address from SERVER_LISTEN_ADDR ("host:port"), else from the
    "server" section of config.yaml, else 127.0.0.1:8080
    """
    listen_addr = os.getenv("SERVER_LISTEN_ADDR")
    if listen_addr:
        host, _, port = listen_addr.rpartition(":")
        return host or "0.0.0.0", int(port)

    server_config = load_config(os.getenv("CONFIG_PATH")).get("server") or {}
    default_host, _, default_port = DEFAULT_LISTEN_ADDR.partition(":")
    return server_config.get("host", default_host), int(server_config.get("port", default_port))


if __name__ == "__main__":
    import uvicorn
    host, port = get_listen_address()

    logger.info(f"Starting SMS API on {host}:{port}")
    uvicorn.run(app, host=host, port=port)
