from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from actor_console.config import CREDENTIAL_KEY, load_env_file, write_env_file
from actor_console.console.gateway_client import GatewayClient
from actor_console.console.lifecycle import RunLifecycleController
from actor_console.domain.actors import ActorDescriptor, ActorSummary
from actor_console.util import mask_credential

logger = logging.getLogger(__name__)

MIN_CREDENTIAL_LENGTH = 32

GatewayFactory = Callable[[str], GatewayClient]


class CredentialError(ValueError):
    pass


def check_credential_format(credential: str) -> str:
    value = (credential or "").strip()
    if len(value) < MIN_CREDENTIAL_LENGTH:
        raise CredentialError("Please enter a valid API key.")
    return value


class CredentialStore:
    """Keeps the single CLI credential in the console ``.env`` file."""

    def __init__(self, env_path: Path) -> None:
        self._env_path = Path(env_path)

    @property
    def path(self) -> Path:
        return self._env_path

    def load(self) -> Optional[str]:
        value = (load_env_file(self._env_path).get(CREDENTIAL_KEY) or "").strip()
        return value or None

    def save(self, credential: str) -> None:
        data = load_env_file(self._env_path)
        data[CREDENTIAL_KEY] = credential
        write_env_file(self._env_path, data)

    def clear(self) -> bool:
        data = load_env_file(self._env_path)
        if CREDENTIAL_KEY not in data:
            return False
        del data[CREDENTIAL_KEY]
        write_env_file(self._env_path, data)
        return True


@dataclass
class ConsoleSession:
    """Everything one operator's console holds between requests.

    Created once the credential validates, destroyed when it is cleared.
    """

    session_id: str
    gateway: GatewayClient
    controller: RunLifecycleController
    actors: List[ActorSummary] = field(default_factory=list)
    actor: Optional[ActorDescriptor] = None
    editor_text: str = "{}"

    @property
    def credential(self) -> str:
        return self.gateway.credential

    async def close(self) -> None:
        await self.controller.close()
        await self.gateway.aclose()


async def open_session(
    credential: str,
    gateway_factory: GatewayFactory,
    *,
    poll_interval_sec: float,
    session_id: Optional[str] = None,
) -> ConsoleSession:
    """Validate ``credential`` against the actor listing and build a session.

    Raises ``CredentialError`` for malformed values and ``GatewayClientError``
    when the gateway rejects the credential.
    """
    value = check_credential_format(credential)
    gateway = gateway_factory(value)
    try:
        actors = await gateway.list_actors()
    except Exception:
        await gateway.aclose()
        raise
    logger.info("Credential %s validated (%d actors)", mask_credential(value), len(actors))
    controller = RunLifecycleController(gateway, poll_interval_sec=poll_interval_sec)
    return ConsoleSession(
        session_id=session_id or secrets.token_urlsafe(16),
        gateway=gateway,
        controller=controller,
        actors=actors,
    )


class SessionRegistry:
    def __init__(self, gateway_factory: GatewayFactory, poll_interval_sec: float) -> None:
        self._gateway_factory = gateway_factory
        self._poll_interval_sec = poll_interval_sec
        self._sessions: Dict[str, ConsoleSession] = {}

    def get(self, session_id: str, credential: str = "") -> Optional[ConsoleSession]:
        session = self._sessions.get(session_id or "")
        if session is None:
            return None
        if credential and session.credential != credential:
            return None
        return session

    async def open(self, credential: str, replaces: str = "") -> ConsoleSession:
        """Validate ``credential`` and register a new session.

        The session named by ``replaces`` is discarded first, whether or not
        the new credential turns out to be valid, so its polling stops.
        """
        await self.discard(replaces)
        session = await open_session(
            credential,
            self._gateway_factory,
            poll_interval_sec=self._poll_interval_sec,
        )
        self._sessions[session.session_id] = session
        return session

    async def discard(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id or "", None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions.keys()):
            await self.discard(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
