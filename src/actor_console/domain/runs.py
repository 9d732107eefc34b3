from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


RUN_STATUS_READY = "READY"
RUN_STATUS_RUNNING = "RUNNING"
RUN_STATUS_TIMING_OUT = "TIMING-OUT"
RUN_STATUS_ABORTING = "ABORTING"
RUN_STATUS_SUCCEEDED = "SUCCEEDED"
RUN_STATUS_FAILED = "FAILED"
RUN_STATUS_TIMED_OUT = "TIMED-OUT"
RUN_STATUS_ABORTED = "ABORTED"

IN_PROGRESS_STATUSES = frozenset(
    {RUN_STATUS_READY, RUN_STATUS_RUNNING, RUN_STATUS_TIMING_OUT, RUN_STATUS_ABORTING}
)
TERMINAL_STATUSES = frozenset(
    {RUN_STATUS_SUCCEEDED, RUN_STATUS_FAILED, RUN_STATUS_TIMED_OUT, RUN_STATUS_ABORTED}
)
FAILURE_STATUSES = frozenset({RUN_STATUS_FAILED, RUN_STATUS_TIMED_OUT, RUN_STATUS_ABORTED})


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


@dataclass(frozen=True)
class RunRecord:
    """Snapshot of one actor run as reported by the upstream API.

    Records are replaced wholesale on every status fetch; ``raw`` keeps the
    upstream mapping for fields this class does not name.
    """

    run_id: str
    status: str
    act_id: str = ""
    status_message: str = ""
    started_at: str = ""
    finished_at: str = ""
    build_number: str = ""
    exit_code: Optional[int] = None
    default_dataset_id: str = ""
    default_key_value_store_id: str = ""
    usage_total_usd: Optional[float] = None
    console_url: str = ""
    stats: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    charged_event_counts: Dict[str, Any] = field(default_factory=dict)
    pricing_info: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "RunRecord":
        data = _as_dict(payload)
        if "data" in data and isinstance(data["data"], Mapping):
            data = dict(data["data"])
        exit_code = data.get("exitCode")
        return cls(
            run_id=str(data.get("id") or ""),
            status=str(data.get("status") or "").upper(),
            act_id=str(data.get("actId") or ""),
            status_message=str(data.get("statusMessage") or ""),
            started_at=str(data.get("startedAt") or ""),
            finished_at=str(data.get("finishedAt") or ""),
            build_number=str(data.get("buildNumber") or ""),
            exit_code=exit_code if isinstance(exit_code, int) and not isinstance(exit_code, bool) else None,
            default_dataset_id=str(data.get("defaultDatasetId") or data.get("datasetId") or ""),
            default_key_value_store_id=str(data.get("defaultKeyValueStoreId") or ""),
            usage_total_usd=_as_float(data.get("usageTotalUsd")),
            console_url=str(data.get("consoleUrl") or ""),
            stats=_as_dict(data.get("stats")),
            options=_as_dict(data.get("options")),
            charged_event_counts=_as_dict(data.get("chargedEventCounts")),
            pricing_info=_as_dict(data.get("pricingInfo")),
            raw=data,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == RUN_STATUS_SUCCEEDED
