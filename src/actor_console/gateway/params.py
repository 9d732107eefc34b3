from typing import Iterable, List, Mapping, Tuple

RUN_OPTION_PARAMS: Tuple[str, ...] = (
    "timeout",
    "memory",
    "maxItems",
    "maxTotalChargeUsd",
    "build",
    "webhooks",
)

DATASET_FORMAT_PARAMS: Tuple[str, ...] = (
    "format",
    "clean",
    "offset",
    "limit",
    "fields",
    "omit",
    "unwind",
    "flatten",
    "desc",
    "attachment",
    "delimiter",
    "bom",
    "xmlRoot",
    "xmlRow",
    "skipHeaderRow",
    "skipHidden",
    "skipEmpty",
    "simplified",
    "skipFailedPages",
)

SYNC_RUN_PARAMS: Tuple[str, ...] = RUN_OPTION_PARAMS + DATASET_FORMAT_PARAMS

DATASET_PAGE_PARAMS: Tuple[str, ...] = (
    "offset",
    "limit",
    "fields",
    "omit",
    "clean",
    "desc",
    "unwind",
    "flatten",
)

ACTOR_LIST_PARAMS: Tuple[str, ...] = ("my", "offset", "limit", "desc")


def collect_params(query: Mapping[str, str], names: Iterable[str]) -> List[Tuple[str, str]]:
    """Pick the named query values that are present and non-empty, in ``names`` order."""
    out: List[Tuple[str, str]] = []
    for name in names:
        value = query.get(name)
        if value:
            out.append((name, value))
    return out


def is_attachment(value: str) -> bool:
    return value in {"true", "1"}
