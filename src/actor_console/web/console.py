import logging
import math
from typing import Any, Dict, Optional

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from actor_console.console.gateway_client import GatewayClientError
from actor_console.console.lifecycle import InputValidationError, example_input, format_input
from actor_console.console.session import ConsoleSession, CredentialError, SessionRegistry
from actor_console.domain.actors import ActorDescriptor
from actor_console.presentation import ResultTable, summarize_run

logger = logging.getLogger(__name__)

CREDENTIAL_COOKIE = "apify-api-key"
SESSION_COOKIE = "actor-console-session"
INVALID_CREDENTIAL_MESSAGE = "Invalid API key. Please check and try again."


def _set_cookies(response: Response, session: ConsoleSession) -> Response:
    response.set_cookie(CREDENTIAL_COOKIE, session.credential, httponly=True, samesite="lax")
    response.set_cookie(SESSION_COOKIE, session.session_id, httponly=True, samesite="lax")
    return response


def _clear_cookies(response: Response) -> Response:
    response.delete_cookie(CREDENTIAL_COOKIE)
    response.delete_cookie(SESSION_COOKIE)
    return response


def _run_options(timeout: str, memory: str, build: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if timeout.strip():
        options["timeout"] = timeout.strip()
    if memory.strip():
        options["memory"] = memory.strip()
    if build.strip():
        options["build"] = build.strip()
    return options


def register_console_routes(app: FastAPI, templates: Jinja2Templates, registry: SessionRegistry) -> None:
    async def _resolve_session(request: Request) -> Optional[ConsoleSession]:
        credential = (request.cookies.get(CREDENTIAL_COOKIE) or "").strip()
        if not credential:
            return None
        session_id = request.cookies.get(SESSION_COOKIE, "")
        session = registry.get(session_id, credential)
        if session is not None:
            return session
        # credential cookie outlived or no longer matches its session; validate it again
        try:
            return await registry.open(credential, replaces=session_id)
        except (CredentialError, GatewayClientError) as exc:
            logger.info("Stored credential rejected: %s", getattr(exc, "message", exc))
            return None

    def _home(request: Request, session: Optional[ConsoleSession], error: str = "", status_code: int = 200):
        return templates.TemplateResponse(
            request,
            "home.html",
            {
                "nav": "home",
                "session": session,
                "actors": session.actors if session else [],
                "error": error,
            },
            status_code=status_code,
        )

    async def _load_actor(session: ConsoleSession, actor_id: str) -> str:
        if session.actor is not None and actor_id in (session.actor.actor_id, session.actor.full_name):
            return ""
        try:
            actor = await session.gateway.get_actor(actor_id)
        except GatewayClientError as exc:
            session.actor = None
            session.editor_text = "{}"
            return f"Failed to load actor: {exc.message}"
        session.actor = actor
        session.editor_text = example_input(actor)
        return ""

    def _actor_page(
        request: Request,
        session: ConsoleSession,
        actor_id: str,
        error: str = "",
        status_code: int = 200,
    ):
        controller = session.controller
        tracking = controller.actor_id == actor_id
        run = controller.run if tracking else None
        refresh_sec = math.ceil(controller.poll_interval_sec) if tracking and controller.is_active else 0
        return _set_cookies(
            templates.TemplateResponse(
                request,
                "actor.html",
                {
                    "nav": "actor",
                    "actor_id": actor_id,
                    "actor": session.actor or ActorDescriptor.placeholder(actor_id),
                    "editor_text": session.editor_text,
                    "error": error,
                    "phase": controller.phase.value if tracking else "idle",
                    "run": run,
                    "summary": summarize_run(run) if run is not None else None,
                    "table": ResultTable.from_records(controller.results) if tracking else None,
                    "results_loading": tracking and controller.results_loading,
                    "notifications": controller.drain_notifications(),
                    "refresh_sec": refresh_sec,
                },
                status_code=status_code,
            ),
            session,
        )

    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request):
        session = await _resolve_session(request)
        if session is None:
            response = _home(request, None)
            if request.cookies.get(CREDENTIAL_COOKIE):
                _clear_cookies(response)
            return response
        return _set_cookies(_home(request, session), session)

    @app.post("/credential", response_class=HTMLResponse)
    async def credential_submit(request: Request, api_key: str = Form("")):
        try:
            session = await registry.open(api_key, replaces=request.cookies.get(SESSION_COOKIE, ""))
        except CredentialError as exc:
            return _clear_cookies(_home(request, None, error=str(exc), status_code=400))
        except GatewayClientError as exc:
            logger.info("Credential validation failed: %s", exc.message)
            return _clear_cookies(_home(request, None, error=INVALID_CREDENTIAL_MESSAGE, status_code=401))
        return _set_cookies(RedirectResponse(url="/", status_code=303), session)

    @app.post("/credential/clear")
    async def credential_clear(request: Request):
        await registry.discard(request.cookies.get(SESSION_COOKIE, ""))
        return _clear_cookies(RedirectResponse(url="/", status_code=303))

    @app.get("/console/state")
    async def console_state(request: Request):
        session = registry.get(
            request.cookies.get(SESSION_COOKIE, ""),
            request.cookies.get(CREDENTIAL_COOKIE, ""),
        )
        if session is None:
            return JSONResponse({"error": "API key is required"}, status_code=401)
        return session.controller.snapshot()

    # registered before the catch-all actor page, ids may contain "/"
    @app.get("/actor/{actor_id:path}/results", response_class=HTMLResponse)
    async def actor_results(request: Request, actor_id: str):
        session = await _resolve_session(request)
        if session is None:
            return RedirectResponse(url="/", status_code=303)
        controller = session.controller
        records = controller.results if controller.actor_id == actor_id else []
        return _set_cookies(
            templates.TemplateResponse(
                request,
                "results.html",
                {
                    "nav": "results",
                    "actor_id": actor_id,
                    "table": ResultTable.from_records(records),
                },
            ),
            session,
        )

    @app.post("/actor/{actor_id:path}/run", response_class=HTMLResponse)
    async def actor_run(
        request: Request,
        actor_id: str,
        input_text: str = Form(""),
        timeout: str = Form(""),
        memory: str = Form(""),
        build: str = Form(""),
    ):
        session = await _resolve_session(request)
        if session is None:
            return RedirectResponse(url="/", status_code=303)
        await _load_actor(session, actor_id)
        session.editor_text = input_text
        try:
            session.controller.submit(actor_id, input_text, _run_options(timeout, memory, build) or None)
        except InputValidationError as exc:
            return _actor_page(request, session, actor_id, error=str(exc), status_code=400)
        return _set_cookies(RedirectResponse(url=f"/actor/{actor_id}", status_code=303), session)

    @app.post("/actor/{actor_id:path}/format", response_class=HTMLResponse)
    async def actor_format(request: Request, actor_id: str, input_text: str = Form("")):
        session = await _resolve_session(request)
        if session is None:
            return RedirectResponse(url="/", status_code=303)
        await _load_actor(session, actor_id)
        session.editor_text = input_text
        try:
            session.editor_text = format_input(input_text)
        except InputValidationError as exc:
            return _actor_page(request, session, actor_id, error=str(exc), status_code=400)
        return _set_cookies(RedirectResponse(url=f"/actor/{actor_id}", status_code=303), session)

    @app.post("/actor/{actor_id:path}/reset", response_class=HTMLResponse)
    async def actor_reset(request: Request, actor_id: str):
        session = await _resolve_session(request)
        if session is None:
            return RedirectResponse(url="/", status_code=303)
        await _load_actor(session, actor_id)
        session.editor_text = example_input(session.actor)
        return _set_cookies(RedirectResponse(url=f"/actor/{actor_id}", status_code=303), session)

    @app.get("/actor/{actor_id:path}", response_class=HTMLResponse)
    async def actor_page(request: Request, actor_id: str):
        session = await _resolve_session(request)
        if session is None:
            return RedirectResponse(url="/", status_code=303)
        error = await _load_actor(session, actor_id)
        return _actor_page(request, session, actor_id, error=error)
