from dataclasses import dataclass
from typing import Any, List, Optional


ERR_AUTH_MISSING = "ERR_AUTH_MISSING"
ERR_BAD_REQUEST = "ERR_BAD_REQUEST"
ERR_UPSTREAM_REJECTED = "ERR_UPSTREAM_REJECTED"
ERR_NETWORK = "ERR_NETWORK"
ERR_INTERNAL = "ERR_INTERNAL"


@dataclass(frozen=True)
class ErrorCatalogEntry:
    code: str
    status_code: int
    user_message: str


ERROR_CATALOG: List[ErrorCatalogEntry] = [
    ErrorCatalogEntry(
        code=ERR_AUTH_MISSING,
        status_code=401,
        user_message="API key is required",
    ),
    ErrorCatalogEntry(
        code=ERR_BAD_REQUEST,
        status_code=400,
        user_message="Request body must be valid JSON",
    ),
    ErrorCatalogEntry(
        code=ERR_UPSTREAM_REJECTED,
        status_code=502,
        user_message="Apify API error",
    ),
    ErrorCatalogEntry(
        code=ERR_NETWORK,
        status_code=503,
        user_message="Connection error while contacting the gateway.",
    ),
    ErrorCatalogEntry(
        code=ERR_INTERNAL,
        status_code=500,
        user_message="Unexpected server error",
    ),
]


def get_catalog_entry(code: str) -> ErrorCatalogEntry:
    for entry in ERROR_CATALOG:
        if entry.code == code:
            return entry
    return ERROR_CATALOG[-1]


def detect_error_code(status_code: int) -> str:
    if status_code == 401:
        return ERR_AUTH_MISSING
    if status_code == 400:
        return ERR_BAD_REQUEST
    if status_code >= 500 or status_code <= 0:
        return ERR_INTERNAL
    return ERR_UPSTREAM_REJECTED


class GatewayError(Exception):
    """Failure raised inside a gateway endpoint, rendered as ``{"error": ...}``.

    ``error`` is the JSON value placed in the body: a string for local
    failures, or the upstream ``error`` value relayed verbatim.
    """

    def __init__(self, code: str, status_code: int, error: Any, cause: Optional[str] = None) -> None:
        super().__init__(error if isinstance(error, str) else f"{code} ({status_code})")
        self.code = code
        self.status_code = status_code
        self.error = error
        self.cause = cause or ""


def auth_missing() -> GatewayError:
    entry = get_catalog_entry(ERR_AUTH_MISSING)
    return GatewayError(entry.code, entry.status_code, entry.user_message)


def bad_request(message: str = "") -> GatewayError:
    entry = get_catalog_entry(ERR_BAD_REQUEST)
    return GatewayError(entry.code, entry.status_code, message or entry.user_message)


def upstream_rejected(status_code: int, error: Any = None) -> GatewayError:
    """Relay an upstream ``error`` value, or name the status when it has none."""
    entry = get_catalog_entry(ERR_UPSTREAM_REJECTED)
    return GatewayError(entry.code, status_code, error or f"{entry.user_message}: {status_code}")


def internal_error(cause: str = "") -> GatewayError:
    entry = get_catalog_entry(ERR_INTERNAL)
    return GatewayError(entry.code, entry.status_code, entry.user_message, cause=cause)
