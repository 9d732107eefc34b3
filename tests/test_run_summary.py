from actor_console.domain.runs import RunRecord
from actor_console.presentation import dataset_console_url, summarize_run


def _run(**fields):
    payload = {"id": "run-1", "status": "SUCCEEDED", "defaultDatasetId": "ds-1"}
    payload.update(fields)
    return RunRecord.from_api({"data": payload})


class TestRunSummary:
    def test_usage_figures(self):
        run = _run(
            stats={
                "durationMillis": 12346,
                "computeUnits": 0.0123456,
                "memMaxBytes": 268435456,
                "cpuMaxUsage": 87.3,
                "netRxBytes": 2048,
                "netTxBytes": 1536,
            },
            usageTotalUsd=0.04567,
        )
        usage = dict(summarize_run(run).usage)
        assert usage["Duration"] == "12.35s"
        assert usage["Compute Units"] == "0.0123"
        assert usage["Peak Memory"] == "256.0 MB"
        assert usage["Peak CPU"] == "87.3%"
        assert usage["Network In"] == "2.0 KB"
        assert usage["Network Out"] == "1.5 KB"
        assert usage["Total Cost"] == "$0.046"

    def test_usage_only_for_succeeded_runs(self):
        run = _run(status="FAILED", statusMessage="Crashed", stats={"computeUnits": 1.5})
        summary = summarize_run(run)
        assert summary.usage == []
        assert ("Status Message", "Crashed") in summary.facts

    def test_facts_and_links(self):
        run = _run(
            startedAt="2024-05-01T10:00:00.000Z",
            finishedAt="2024-05-01T10:00:12.345Z",
            exitCode=0,
            buildNumber="0.1.7",
            consoleUrl="https://console.apify.com/actors/a1/runs/run-1",
            stats={"durationMillis": 12346},
        )
        summary = summarize_run(run)
        facts = dict(summary.facts)
        assert facts["Status"] == "SUCCEEDED"
        assert facts["Run ID"] == "run-1"
        assert facts["Duration"] == "12.35s"
        assert facts["Exit Code"] == "0"
        assert facts["Build"] == "0.1.7"
        assert summary.links == [
            ("View in Apify Console", "https://console.apify.com/actors/a1/runs/run-1"),
            ("View Dataset", "https://console.apify.com/storage/datasets/ds-1"),
        ]

    def test_dataset_id_falls_back(self):
        run = RunRecord.from_api({"id": "r", "status": "SUCCEEDED", "datasetId": "legacy"})
        assert dataset_console_url(run.default_dataset_id).endswith("/legacy")

    def test_charged_events_with_pricing(self):
        run = _run(
            chargedEventCounts={"actor-start": 1, "result-item": 40, "idle": 0},
            pricingInfo={
                "pricingPerEvent": {
                    "actorChargeEvents": {
                        "result-item": {"eventTitle": "Result", "eventPriceUsd": 0.002},
                    }
                }
            },
        )
        summary = summarize_run(run)
        names = [event.name for event in summary.charged_events]
        assert names == ["actor-start", "result-item"]
        item = summary.charged_events[1]
        assert item.label == "result item"
        assert item.pricing_line == "Result: $0.002 × 40 = $0.080"
        assert summary.charged_events[0].pricing_line == ""
        lines = summary.as_lines()
        assert "Charged Events:" in lines
        assert "    Result: $0.002 × 40 = $0.080" in lines
