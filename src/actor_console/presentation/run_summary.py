from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from actor_console.domain.runs import RunRecord

DATASET_CONSOLE_URL = "https://console.apify.com/storage/datasets/{dataset_id}"


@dataclass(frozen=True)
class ChargedEvent:
    name: str
    count: float
    title: str = ""
    price_usd: Optional[float] = None

    @property
    def label(self) -> str:
        return self.name.replace("-", " ", 1)

    @property
    def total_usd(self) -> Optional[float]:
        if self.price_usd is None:
            return None
        return self.price_usd * self.count

    @property
    def pricing_line(self) -> str:
        if self.price_usd is None:
            return ""
        return f"{self.title}: ${_plain_number(self.price_usd)} × {_plain_number(self.count)} = ${self.total_usd:.3f}"


@dataclass(frozen=True)
class RunSummary:
    facts: List[Tuple[str, str]]
    usage: List[Tuple[str, str]]
    charged_events: List[ChargedEvent]
    links: List[Tuple[str, str]]

    def as_lines(self) -> List[str]:
        lines = [f"{label}: {value}" for label, value in self.facts]
        if self.usage:
            lines.append("Usage & Performance:")
            lines.extend(f"  {label}: {value}" for label, value in self.usage)
        if self.charged_events:
            lines.append("Charged Events:")
            for event in self.charged_events:
                lines.append(f"  {event.label}: {_plain_number(event.count)}")
            pricing = [e.pricing_line for e in self.charged_events if e.pricing_line]
            if pricing:
                lines.append("  Pricing per event:")
                lines.extend(f"    {line}" for line in pricing)
        lines.extend(f"{label}: {url}" for label, url in self.links)
        return lines


def _plain_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _positive(stats: Dict[str, Any], key: str) -> Optional[float]:
    value = stats.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return None
    return float(value)


def format_duration(duration_millis: Any) -> str:
    if isinstance(duration_millis, bool) or not isinstance(duration_millis, (int, float)):
        return ""
    return f"{duration_millis / 1000:.2f}s"


def dataset_console_url(dataset_id: str) -> str:
    return DATASET_CONSOLE_URL.format(dataset_id=dataset_id)


def _usage(run: RunRecord) -> List[Tuple[str, str]]:
    stats = run.stats
    usage: List[Tuple[str, str]] = []
    duration = _positive(stats, "durationMillis")
    if duration is not None:
        usage.append(("Duration", format_duration(duration)))
    compute_units = _positive(stats, "computeUnits")
    if compute_units is not None:
        usage.append(("Compute Units", f"{compute_units:.4f}"))
    memory = _positive(stats, "memMaxBytes")
    if memory is not None:
        usage.append(("Peak Memory", f"{memory / 1024 / 1024:.1f} MB"))
    cpu = _positive(stats, "cpuMaxUsage")
    if cpu is not None:
        usage.append(("Peak CPU", f"{cpu:.1f}%"))
    net_rx = _positive(stats, "netRxBytes")
    if net_rx is not None:
        usage.append(("Network In", f"{net_rx / 1024:.1f} KB"))
    net_tx = _positive(stats, "netTxBytes")
    if net_tx is not None:
        usage.append(("Network Out", f"{net_tx / 1024:.1f} KB"))
    if run.usage_total_usd:
        usage.append(("Total Cost", f"${run.usage_total_usd:.3f}"))
    return usage


def _charged_events(run: RunRecord) -> List[ChargedEvent]:
    per_event = run.pricing_info.get("pricingPerEvent")
    catalog = per_event.get("actorChargeEvents") if isinstance(per_event, dict) else None
    if not isinstance(catalog, dict):
        catalog = {}
    events: List[ChargedEvent] = []
    for name, count in run.charged_event_counts.items():
        if isinstance(count, bool) or not isinstance(count, (int, float)) or count <= 0:
            continue
        info = catalog.get(name)
        price = info.get("eventPriceUsd") if isinstance(info, dict) else None
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            price = None
        events.append(
            ChargedEvent(
                name=str(name),
                count=count,
                title=str(info.get("eventTitle") or name) if isinstance(info, dict) else str(name),
                price_usd=float(price) if price is not None else None,
            )
        )
    return events


def summarize_run(run: RunRecord) -> RunSummary:
    """Collect the operator-facing facts for ``run``.

    Usage figures are only reported for succeeded runs; zero or missing
    statistics are left out.
    """
    facts: List[Tuple[str, str]] = [("Status", run.status or "UNKNOWN"), ("Run ID", run.run_id)]
    if run.started_at:
        facts.append(("Started", run.started_at))
    if run.finished_at:
        facts.append(("Finished", run.finished_at))
    duration = format_duration(run.stats.get("durationMillis")) if run.stats.get("durationMillis") else ""
    if duration:
        facts.append(("Duration", duration))
    if run.exit_code is not None:
        facts.append(("Exit Code", str(run.exit_code)))
    if run.build_number:
        facts.append(("Build", run.build_number))
    if run.status_message:
        facts.append(("Status Message", run.status_message))

    links: List[Tuple[str, str]] = []
    if run.console_url:
        links.append(("View in Apify Console", run.console_url))
    if run.default_dataset_id:
        links.append(("View Dataset", dataset_console_url(run.default_dataset_id)))

    return RunSummary(
        facts=facts,
        usage=_usage(run) if run.succeeded else [],
        charged_events=_charged_events(run),
        links=links,
    )
