import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TextIO

from .config import (
    CREDENTIAL_KEY,
    DEFAULT_CONFIG_DIR,
    Config,
    get_env_value,
    load_config,
    load_env_file,
)
from .console.gateway_client import GatewayClient, GatewayClientError
from .console.lifecycle import InputValidationError, Notification, RunLifecycleController, example_input
from .console.session import CredentialError, CredentialStore, check_credential_format, open_session
from .presentation import ResultTable, summarize_run
from .util import mask_credential, redact


def _configure_logging(level: str) -> None:
    level = (level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_config(config: Config) -> None:
    credential = get_env_value(CREDENTIAL_KEY, load_env_file(config.env_path))
    print(f"Config dir: {config.config_dir}")
    print(f"Env file: {config.env_path}")
    print(f"API key present: {'yes (' + mask_credential(credential) + ')' if credential else 'no'}")
    print(f"Apify API base URL: {config.base_url}")
    print(f"Connect timeout: {config.connect_timeout_sec:g}s")
    print(f"Read timeout: {config.read_timeout_sec:g}s")
    print(f"Poll interval: {config.poll_interval_sec:g}s")


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).expanduser().read_text(encoding="utf-8")


async def run_actor(
    gateway: GatewayClient,
    actor_id: str,
    input_text: Optional[str],
    *,
    poll_interval_sec: float,
    out: TextIO = sys.stdout,
    err: TextIO = sys.stderr,
) -> int:
    """Run ``actor_id`` to completion and print its summary and results.

    Without ``input_text`` the actor's example input is used. Returns the
    process exit code: 0 only when the run succeeded.
    """
    if input_text is None:
        input_text = example_input(await gateway.get_actor(actor_id))

    def _echo(note: Notification) -> None:
        print(f"[{note.level}] {note.message}", file=err)

    controller = RunLifecycleController(gateway, poll_interval_sec=poll_interval_sec, on_notify=_echo)
    try:
        run = await controller.start(actor_id, input_text)
    except InputValidationError:
        return 2
    finally:
        await controller.close()
    if run is None:
        return 1
    for line in summarize_run(run).as_lines():
        print(line, file=out)
    if controller.results:
        table = ResultTable.from_records(controller.results)
        print("", file=out)
        print(table.summary, file=out)
        print(table.render_text(), file=out)
    return 0 if run.succeeded else 1


async def _with_gateway(
    config: Config,
    credential: str,
    gateway_url: str,
    action: Callable[[GatewayClient], Awaitable[Any]],
):
    if gateway_url:
        gateway = GatewayClient.remote(gateway_url, credential, timeout_sec=config.read_timeout_sec)
        try:
            return await action(gateway)
        finally:
            await gateway.aclose()

    from .web.app import create_app

    app = create_app(config)
    gateway = GatewayClient.in_process(app, credential, timeout_sec=config.read_timeout_sec)
    try:
        return await action(gateway)
    finally:
        await gateway.aclose()
        await app.state.upstream.aclose()


def _resolve_credential(config: Config) -> str:
    credential = (get_env_value(CREDENTIAL_KEY, load_env_file(config.env_path)) or "").strip()
    if not credential:
        raise CredentialError(f"No API key configured. Use --set-key or set {CREDENTIAL_KEY}.")
    return credential


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Apify actor console")
    parser.add_argument(
        "--config-dir",
        default=str(DEFAULT_CONFIG_DIR),
        help="Directory to store .env config (default: ~/.config/apify-actor-console)",
    )
    parser.add_argument("--print-config", action="store_true", help="Print active config summary")
    parser.add_argument("--serve", action="store_true", help="Run the gateway and web console")
    parser.add_argument("--set-key", metavar="API_KEY", help="Validate and store an Apify API key")
    parser.add_argument("--clear-key", action="store_true", help="Forget the stored API key")
    parser.add_argument("--validate", action="store_true", help="Check the configured API key")
    parser.add_argument("--list-actors", action="store_true", help="List actors available to the API key")
    parser.add_argument("--run", metavar="ACTOR_ID", help="Run an actor and wait for its results")
    parser.add_argument("--input", metavar="FILE", help="JSON input file for --run ('-' reads stdin)")
    parser.add_argument("--gateway-url", default="", help="Use a remote gateway instead of the in-process one")
    parser.add_argument("--host", default="127.0.0.1", help="Web console bind host")
    parser.add_argument("--port", type=int, default=8765, help="Web console bind port")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))

    args = parser.parse_args(argv)
    config_dir = Path(args.config_dir).expanduser().resolve()

    _configure_logging(args.log_level)
    config = load_config(config_dir)
    store = CredentialStore(config.env_path)

    if args.print_config:
        _print_config(config)
        return 0

    if args.clear_key:
        if store.clear():
            print("API key removed.", file=sys.stderr)
        else:
            print("No API key stored.", file=sys.stderr)
        return 0

    if args.serve:
        from .web.app import create_app
        import uvicorn

        app = create_app(config)
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
        return 0

    try:
        if args.set_key is not None:
            credential = check_credential_format(args.set_key)
        else:
            credential = _resolve_credential(config)
    except CredentialError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    async def _validate(gateway: GatewayClient) -> int:
        session = await open_session(
            credential,
            lambda _value: gateway,
            poll_interval_sec=config.poll_interval_sec,
        )
        await session.controller.close()
        return len(session.actors)

    async def _list(gateway: GatewayClient) -> int:
        for actor in await gateway.list_actors():
            print(f"{actor.actor_id}\t{actor.label}")
        return 0

    async def _run(gateway: GatewayClient) -> int:
        input_text = _read_input(args.input) if args.input else None
        return await run_actor(gateway, args.run, input_text, poll_interval_sec=config.poll_interval_sec)

    try:
        if args.set_key is not None or args.validate:
            count = asyncio.run(_with_gateway(config, credential, args.gateway_url, _validate))
            if args.set_key is not None:
                store.save(credential)
                print(f"API key {mask_credential(credential)} saved to {store.path}", file=sys.stderr)
            print(f"API key is valid ({count} actors available).")
            return 0
        if args.list_actors:
            return asyncio.run(_with_gateway(config, credential, args.gateway_url, _list))
        if args.run:
            return asyncio.run(_with_gateway(config, credential, args.gateway_url, _run))
    except GatewayClientError as exc:
        print(f"Error: {redact(exc.message)}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
