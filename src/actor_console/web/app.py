from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI
from fastapi.templating import Jinja2Templates

from actor_console.config import Config, load_config
from actor_console.console.gateway_client import GatewayClient
from actor_console.console.session import SessionRegistry
from actor_console.gateway.routes import register_gateway_routes
from actor_console.gateway.upstream import ApifyUpstream, build_httpx_client
from actor_console.web.console import register_console_routes


def create_app(
    config: Optional[Config] = None,
    *,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the gateway plus the web console on one FastAPI app.

    ``upstream_transport`` replaces the network transport of the upstream
    client; tests pass an ``httpx.MockTransport`` here.
    """
    cfg = config or load_config()
    base_dir = Path(__file__).resolve().parent
    templates = Jinja2Templates(directory=str(base_dir / "templates"))
    upstream = ApifyUpstream(
        build_httpx_client(
            base_url=cfg.base_url,
            connect_timeout_sec=cfg.connect_timeout_sec,
            read_timeout_sec=cfg.read_timeout_sec,
            transport=upstream_transport,
        )
    )

    app = FastAPI(title="Apify Actor Console", version="0.1.0")

    def _gateway_for(credential: str) -> GatewayClient:
        return GatewayClient.in_process(app, credential, timeout_sec=cfg.read_timeout_sec)

    registry = SessionRegistry(_gateway_for, poll_interval_sec=cfg.poll_interval_sec)
    app.state.config = cfg
    app.state.upstream = upstream
    app.state.sessions = registry

    @app.on_event("shutdown")
    async def _shutdown_console() -> None:
        await registry.close_all()
        await upstream.aclose()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "upstream": cfg.base_url,
            "sessions": len(registry),
        }

    register_gateway_routes(app, upstream)
    register_console_routes(app, templates, registry)
    return app
