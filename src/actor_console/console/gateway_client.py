from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI

from actor_console.domain.actors import ActorDescriptor, ActorSummary, parse_actor_listing
from actor_console.domain.runs import RunRecord
from actor_console.gateway.errors import ERR_INTERNAL, ERR_NETWORK, detect_error_code, get_catalog_entry
from actor_console.gateway.routes import API_KEY_HEADER
from actor_console.util import redact

logger = logging.getLogger(__name__)

IN_PROCESS_BASE_URL = "http://gateway.local"


class GatewayClientError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.code == ERR_NETWORK


def _error_message(body: Any, status_code: int) -> str:
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        error = error.get("message") or error.get("type")
    text = str(error or "").strip()
    return text or f"Gateway error: {status_code}"


class GatewayClient:
    """Console-side client of the proxy gateway endpoints.

    Works against a remote gateway (``remote``) or the gateway mounted in the
    same process (``in_process``), so console traffic always takes the
    gateway route to the upstream API.
    """

    def __init__(self, http: httpx.AsyncClient, credential: str) -> None:
        self._http = http
        self._credential = credential

    @classmethod
    def in_process(cls, app: FastAPI, credential: str, timeout_sec: float = 330.0) -> "GatewayClient":
        http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url=IN_PROCESS_BASE_URL,
            timeout=timeout_sec,
        )
        return cls(http, credential)

    @classmethod
    def remote(cls, base_url: str, credential: str, timeout_sec: float = 330.0) -> "GatewayClient":
        http = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout_sec)
        return cls(http, credential)

    @property
    def credential(self) -> str:
        return self._credential

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
    ) -> Any:
        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                json=json_body,
                headers={API_KEY_HEADER: self._credential},
            )
        except httpx.TransportError as exc:
            logger.warning("Gateway %s %s unreachable: %s", method, path, redact(str(exc)))
            entry = get_catalog_entry(ERR_NETWORK)
            raise GatewayClientError(entry.code, entry.user_message, entry.status_code) from exc
        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.is_success:
            raise GatewayClientError(
                detect_error_code(response.status_code),
                _error_message(body, response.status_code),
                response.status_code,
            )
        if body is None and response.content.strip() != b"null":
            raise GatewayClientError(ERR_INTERNAL, "Gateway returned a non-JSON response.", response.status_code)
        return body

    async def list_actors(self) -> List[ActorSummary]:
        return parse_actor_listing(await self._call("GET", "/api/actors"))

    async def get_actor(self, actor_id: str) -> ActorDescriptor:
        return ActorDescriptor.from_api(await self._call("GET", "/api/schema", params={"actorId": actor_id}))

    async def get_input_schema(self, actor_id: str) -> Optional[Dict[str, Any]]:
        data = await self._call("GET", "/api/input-schema", params={"actorId": actor_id})
        return data if isinstance(data, dict) else None

    async def start_run(
        self, actor_id: str, run_input: Any, options: Optional[Dict[str, Any]] = None
    ) -> RunRecord:
        payload = {"actorId": actor_id, "input": run_input}
        data = await self._call("POST", "/api/run", params=options or None, json_body=payload)
        return RunRecord.from_api(data)

    async def get_run(self, run_id: str) -> RunRecord:
        return RunRecord.from_api(await self._call("GET", "/api/run", params={"runId": run_id}))

    async def list_dataset_items(
        self, dataset_id: str, *, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Any]:
        params: Dict[str, Any] = {"datasetId": dataset_id}
        if offset is not None:
            params["offset"] = offset
        if limit is not None:
            params["limit"] = limit
        data = await self._call("GET", "/api/dataset", params=params)
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            return data["items"]
        return data if isinstance(data, list) else []
