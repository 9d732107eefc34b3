"""Proxy gateway: credential pass-through endpoints in front of the Apify API.

Each endpoint checks, in order, the ``x-apify-api-key`` header, its required
identifier and its request body before anything is sent upstream. Upstream
answers are relayed as-is; failures become ``{"error": ...}`` JSON bodies.
"""
from __future__ import annotations

import functools
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from pydantic import BaseModel, ValidationError
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from actor_console.gateway.errors import (
    GatewayError,
    auth_missing,
    bad_request,
    internal_error,
    upstream_rejected,
)
from actor_console.gateway.params import (
    ACTOR_LIST_PARAMS,
    DATASET_PAGE_PARAMS,
    RUN_OPTION_PARAMS,
    SYNC_RUN_PARAMS,
    collect_params,
    is_attachment,
)
from actor_console.gateway.upstream import ApifyUpstream
from actor_console.observability.structured_log import log_json
from actor_console.util import redact

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-apify-api-key"

Endpoint = Callable[[Request], Awaitable[Response]]


class StartRunRequest(BaseModel):
    actorId: Optional[Union[str, int]] = None
    input: Any = None


def _require_credential(request: Request) -> str:
    credential = (request.headers.get(API_KEY_HEADER) or "").strip()
    if not credential:
        raise auth_missing()
    return credential


def _require_id(value: Any, label: str) -> str:
    identifier = str(value or "").strip() if isinstance(value, (str, int)) else ""
    if not identifier:
        raise bad_request(f"{label} ID is required")
    return identifier


async def _read_json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise bad_request()


async def _rejection(response: httpx.Response) -> GatewayError:
    await response.aread()
    error: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
    return upstream_rejected(response.status_code, error)


def _parse_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise internal_error(f"malformed upstream JSON: {exc}")


async def _relay_json(response: httpx.Response, *, null_on_not_found: bool = False) -> JSONResponse:
    if response.is_success:
        return JSONResponse(_parse_json(response))
    if null_on_not_found and response.status_code == 404:
        return JSONResponse(None)
    raise await _rejection(response)


async def _relay_any(response: httpx.Response, *, attachment: str) -> Response:
    if not response.is_success:
        try:
            raise await _rejection(response)
        finally:
            await response.aclose()
    content_type = response.headers.get("content-type") or ""
    if "application/json" in content_type:
        try:
            await response.aread()
            return JSONResponse(_parse_json(response))
        finally:
            await response.aclose()
    headers = {"Content-Type": content_type or "text/plain"}
    if is_attachment(attachment):
        headers["Content-Disposition"] = "attachment"
    return StreamingResponse(
        response.aiter_bytes(),
        status_code=200,
        headers=headers,
        background=BackgroundTask(response.aclose),
    )


def _proxied(operation: str) -> Callable[[Endpoint], Endpoint]:
    def decorate(handler: Endpoint) -> Endpoint:
        @functools.wraps(handler)
        async def wrapper(request: Request) -> Response:
            started = time.monotonic()
            try:
                response = await handler(request)
            except GatewayError as exc:
                if exc.cause:
                    logger.error("Gateway %s failed: %s", operation, redact(exc.cause))
                log_json(
                    logger,
                    "gateway.request",
                    operation=operation,
                    status=exc.status_code,
                    code=exc.code,
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                )
                return JSONResponse({"error": exc.error}, status_code=exc.status_code)
            except Exception as exc:
                logger.exception("Unexpected error in gateway %s: %s", operation, redact(str(exc)))
                err = internal_error()
                return JSONResponse({"error": err.error}, status_code=err.status_code)
            log_json(
                logger,
                "gateway.request",
                operation=operation,
                status=response.status_code,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )
            return response

        return wrapper

    return decorate


def register_gateway_routes(app: FastAPI, upstream: ApifyUpstream) -> None:
    @app.get("/api/actors")
    @_proxied("list_actors")
    async def api_list_actors(request: Request) -> Response:
        credential = _require_credential(request)
        params = collect_params(request.query_params, ACTOR_LIST_PARAMS)
        return await _relay_json(await upstream.list_actors(credential, params))

    @app.get("/api/schema")
    @_proxied("get_actor")
    async def api_actor_descriptor(request: Request) -> Response:
        credential = _require_credential(request)
        actor_id = _require_id(request.query_params.get("actorId"), "Actor")
        return await _relay_json(await upstream.get_actor(credential, actor_id))

    @app.get("/api/input-schema")
    @_proxied("get_input_schema")
    async def api_actor_input_schema(request: Request) -> Response:
        credential = _require_credential(request)
        actor_id = _require_id(request.query_params.get("actorId"), "Actor")
        response = await upstream.get_input_schema(credential, actor_id)
        return await _relay_json(response, null_on_not_found=True)

    @app.post("/api/run")
    @_proxied("start_run")
    async def api_start_run(request: Request) -> Response:
        credential = _require_credential(request)
        body = await _read_json_body(request)
        try:
            payload = StartRunRequest.model_validate(body if isinstance(body, dict) else {})
        except ValidationError:
            raise bad_request("Actor ID is required")
        actor_id = _require_id(payload.actorId, "Actor")
        run_input = {} if payload.input is None else payload.input
        params = collect_params(request.query_params, RUN_OPTION_PARAMS)
        return await _relay_json(await upstream.start_run(credential, actor_id, run_input, params))

    @app.get("/api/run")
    @_proxied("get_run")
    async def api_run_status(request: Request) -> Response:
        credential = _require_credential(request)
        run_id = _require_id(request.query_params.get("runId"), "Run")
        return await _relay_json(await upstream.get_run(credential, run_id))

    @app.get("/api/dataset")
    @_proxied("list_dataset_items")
    async def api_dataset_items(request: Request) -> Response:
        credential = _require_credential(request)
        dataset_id = _require_id(request.query_params.get("datasetId"), "Dataset")
        params = collect_params(request.query_params, DATASET_PAGE_PARAMS)
        return await _relay_json(await upstream.list_dataset_items(credential, dataset_id, params))

    @app.get("/api/run-sync-get-dataset-items")
    @_proxied("run_sync_get")
    async def api_run_sync_get(request: Request) -> Response:
        credential = _require_credential(request)
        actor_id = _require_id(request.query_params.get("actorId"), "Actor")
        params = collect_params(request.query_params, SYNC_RUN_PARAMS)
        response = await upstream.run_sync_get_dataset_items(credential, actor_id, params)
        return await _relay_any(response, attachment=request.query_params.get("attachment") or "")

    @app.post("/api/run-sync-get-dataset-items")
    @_proxied("run_sync_post")
    async def api_run_sync_post(request: Request) -> Response:
        credential = _require_credential(request)
        actor_id = _require_id(request.query_params.get("actorId"), "Actor")
        run_input = await _read_json_body(request)
        params = collect_params(request.query_params, SYNC_RUN_PARAMS)
        response = await upstream.run_sync_get_dataset_items(
            credential, actor_id, params, run_input=run_input, with_input=True
        )
        return await _relay_any(response, attachment=request.query_params.get("attachment") or "")
