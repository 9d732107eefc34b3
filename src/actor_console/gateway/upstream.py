from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from actor_console.util import redact

logger = logging.getLogger(__name__)

Params = List[Tuple[str, str]]


def build_httpx_client(
    *,
    base_url: str,
    connect_timeout_sec: float,
    read_timeout_sec: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    max_connections: int = 30,
    max_keepalive_connections: int = 10,
) -> httpx.AsyncClient:
    timeout = httpx.Timeout(connect=connect_timeout_sec, read=read_timeout_sec, write=read_timeout_sec, pool=5.0)
    limits = httpx.Limits(
        max_connections=max(1, int(max_connections)),
        max_keepalive_connections=max(1, int(max_keepalive_connections)),
    )
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/") + "/",
        headers={"Content-Type": "application/json"},
        timeout=timeout,
        limits=limits,
        transport=transport,
    )


def path_segment(identifier: str) -> str:
    # Apify accepts "username~actor-name" where the console shows "username/actor-name".
    return quote(identifier.strip().replace("/", "~"), safe="~")


class ApifyUpstream:
    """Thin wrapper over the fixed Apify v2 resource paths.

    Every call returns the raw ``httpx.Response``; status handling belongs to
    the gateway endpoints. Nothing is retried here.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, credential: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}

    async def request(
        self,
        method: str,
        path: str,
        *,
        credential: str,
        params: Optional[Params] = None,
        json_body: Any = None,
        send_body: bool = False,
        stream: bool = False,
    ) -> httpx.Response:
        request = self._client.build_request(
            method,
            path,
            params=params or None,
            json=json_body if send_body else None,
            headers=self._headers(credential),
        )
        logger.debug("upstream %s %s", method, redact(str(request.url)))
        return await self._client.send(request, stream=stream)

    async def list_actors(self, credential: str, params: Optional[Params] = None) -> httpx.Response:
        return await self.request("GET", "acts", credential=credential, params=params)

    async def get_actor(self, credential: str, actor_id: str) -> httpx.Response:
        return await self.request("GET", f"acts/{path_segment(actor_id)}", credential=credential)

    async def get_input_schema(self, credential: str, actor_id: str) -> httpx.Response:
        return await self.request("GET", f"acts/{path_segment(actor_id)}/input-schema", credential=credential)

    async def start_run(
        self, credential: str, actor_id: str, run_input: Any, params: Optional[Params] = None
    ) -> httpx.Response:
        return await self.request(
            "POST",
            f"acts/{path_segment(actor_id)}/runs",
            credential=credential,
            params=params,
            json_body=run_input,
            send_body=True,
        )

    async def get_run(self, credential: str, run_id: str) -> httpx.Response:
        return await self.request("GET", f"actor-runs/{path_segment(run_id)}", credential=credential)

    async def list_dataset_items(
        self, credential: str, dataset_id: str, params: Optional[Params] = None
    ) -> httpx.Response:
        return await self.request(
            "GET", f"datasets/{path_segment(dataset_id)}/items", credential=credential, params=params
        )

    async def run_sync_get_dataset_items(
        self,
        credential: str,
        actor_id: str,
        params: Optional[Params] = None,
        *,
        run_input: Any = None,
        with_input: bool = False,
    ) -> httpx.Response:
        return await self.request(
            "POST" if with_input else "GET",
            f"acts/{path_segment(actor_id)}/run-sync-get-dataset-items",
            credential=credential,
            params=params,
            json_body=run_input,
            send_body=with_input,
            stream=True,
        )
