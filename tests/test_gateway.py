import tempfile
import unittest

import httpx

from fakes import VALID_KEY, FakeApify, make_config, request_json

from actor_console.gateway.errors import (
    ERR_BAD_REQUEST,
    ERR_UPSTREAM_REJECTED,
    bad_request,
    upstream_rejected,
)

try:
    from fastapi.testclient import TestClient
    from actor_console.web.app import create_app
except Exception:  # pragma: no cover - optional for environments without fastapi
    TestClient = None
    create_app = None


HEADERS = {"x-apify-api-key": VALID_KEY}


@unittest.skipIf(TestClient is None or create_app is None, "fastapi test deps unavailable")
class TestGateway(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.apify = FakeApify()
        app = create_app(make_config(self.tmp.name), upstream_transport=self.apify.transport())
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.tmp.cleanup()

    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["status"], "ok")

    def test_missing_credential_is_rejected_before_upstream(self):
        for method, path in (
            ("GET", "/api/actors"),
            ("GET", "/api/schema?actorId=alice/scraper"),
            ("GET", "/api/input-schema?actorId=alice/scraper"),
            ("GET", "/api/run?runId=r1"),
            ("POST", "/api/run"),
            ("GET", "/api/dataset?datasetId=d1"),
            ("GET", "/api/run-sync-get-dataset-items?actorId=alice/scraper"),
            ("POST", "/api/run-sync-get-dataset-items?actorId=alice/scraper"),
        ):
            res = self.client.request(method, path)
            self.assertEqual(res.status_code, 401, path)
            self.assertEqual(res.json(), {"error": "API key is required"})
        self.assertEqual(self.apify.requests, [])

    def test_credential_checked_before_identifier(self):
        res = self.client.get("/api/schema")
        self.assertEqual(res.status_code, 401)

    def test_missing_identifiers(self):
        cases = (
            ("GET", "/api/schema", "Actor ID is required"),
            ("GET", "/api/input-schema", "Actor ID is required"),
            ("GET", "/api/run", "Run ID is required"),
            ("GET", "/api/dataset?datasetId=", "Dataset ID is required"),
            ("GET", "/api/run-sync-get-dataset-items", "Actor ID is required"),
        )
        for method, path, message in cases:
            res = self.client.request(method, path, headers=HEADERS)
            self.assertEqual(res.status_code, 400, path)
            self.assertEqual(res.json(), {"error": message})
        res = self.client.post("/api/run", headers=HEADERS, json={"input": {"q": 1}})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "Actor ID is required"})
        self.assertEqual(self.apify.requests, [])

    def test_malformed_body_is_rejected(self):
        res = self.client.post(
            "/api/run",
            headers={**HEADERS, "Content-Type": "application/json"},
            content=b"{not json",
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "Request body must be valid JSON"})
        res = self.client.post(
            "/api/run-sync-get-dataset-items?actorId=alice/scraper",
            headers=HEADERS,
            content=b"[1, 2",
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(self.apify.requests, [])

    def test_list_actors_relays_payload_with_bearer_header(self):
        payload = {"data": {"total": 1, "items": [{"id": "a1", "username": "alice", "name": "scraper"}]}}
        self.apify.json("GET", "acts", payload)
        res = self.client.get("/api/actors?my=true&limit=", headers=HEADERS)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), payload)
        sent = self.apify.calls("GET", "acts")[0]
        self.assertEqual(sent.headers["authorization"], f"Bearer {VALID_KEY}")
        self.assertEqual(sent.url.params.multi_items(), [("my", "true")])

    def test_actor_id_slash_becomes_tilde(self):
        self.apify.json("GET", "acts/alice~scraper", {"data": {"id": "a1", "name": "scraper"}})
        res = self.client.get("/api/schema?actorId=alice/scraper", headers=HEADERS)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["data"]["id"], "a1")

    def test_upstream_error_field_is_relayed_verbatim(self):
        error = {"type": "record-not-found", "message": "Actor was not found"}
        self.apify.json("GET", "actor-runs/missing", {"error": error}, status_code=404)
        res = self.client.get("/api/run?runId=missing", headers=HEADERS)
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json(), {"error": error})

    def test_upstream_error_without_error_field(self):
        self.apify.on("GET", "datasets/d1/items", lambda _r: httpx.Response(502, text="bad gateway"))
        res = self.client.get("/api/dataset?datasetId=d1", headers=HEADERS)
        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json(), {"error": "Apify API error: 502"})

    def test_input_schema_not_found_is_null(self):
        res = self.client.get("/api/input-schema?actorId=alice/scraper", headers=HEADERS)
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.json())

    def test_start_run_defaults_input_and_forwards_options(self):
        self.apify.json("POST", "acts/alice~scraper/runs", {"data": {"id": "run-1", "status": "READY"}}, 201)
        res = self.client.post(
            "/api/run?timeout=60&build=&memory=1024",
            headers=HEADERS,
            json={"actorId": "alice/scraper", "input": None},
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["data"]["id"], "run-1")
        sent = self.apify.calls("POST", "acts/alice~scraper/runs")[0]
        self.assertEqual(request_json(sent), {})
        self.assertEqual(sent.url.params.multi_items(), [("timeout", "60"), ("memory", "1024")])

    def test_start_run_passes_input_unvalidated(self):
        self.apify.json("POST", "acts/a1/runs", {"data": {"id": "run-2", "status": "RUNNING"}})
        res = self.client.post("/api/run", headers=HEADERS, json={"actorId": "a1", "input": [1, "two"]})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(request_json(self.apify.calls("POST", "acts/a1/runs")[0]), [1, "two"])

    def test_dataset_items_are_not_capped(self):
        items = [{"n": i} for i in range(120)]
        self.apify.json("GET", "datasets/d1/items", items)
        res = self.client.get("/api/dataset?datasetId=d1&offset=10", headers=HEADERS)
        self.assertEqual(len(res.json()), 120)
        sent = self.apify.calls("GET", "datasets/d1/items")[0]
        self.assertEqual(sent.url.params.multi_items(), [("offset", "10")])

    def test_sync_run_streams_non_json_output(self):
        csv_body = b"name,price\nwidget,3\n"
        self.apify.on(
            "GET",
            "acts/alice~scraper/run-sync-get-dataset-items",
            lambda _r: httpx.Response(200, content=csv_body, headers={"Content-Type": "text/csv; charset=utf-8"}),
        )
        res = self.client.get(
            "/api/run-sync-get-dataset-items?actorId=alice/scraper&attachment=true&format=csv&timeout=&memory=256&unknown=1",
            headers=HEADERS,
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.content, csv_body)
        self.assertTrue(res.headers["content-type"].startswith("text/csv"))
        self.assertEqual(res.headers["content-disposition"], "attachment")
        sent = self.apify.calls("GET", "acts/alice~scraper/run-sync-get-dataset-items")[0]
        self.assertEqual(
            sent.url.params.multi_items(),
            [("memory", "256"), ("format", "csv"), ("attachment", "true")],
        )

    def test_sync_run_defaults_to_text_plain_without_attachment(self):
        self.apify.on(
            "GET",
            "acts/a1/run-sync-get-dataset-items",
            lambda _r: httpx.Response(200, content=b"raw output"),
        )
        res = self.client.get("/api/run-sync-get-dataset-items?actorId=a1&attachment=false", headers=HEADERS)
        self.assertEqual(res.content, b"raw output")
        self.assertTrue(res.headers["content-type"].startswith("text/plain"))
        self.assertNotIn("content-disposition", res.headers)

    def test_sync_run_post_forwards_input_and_reemits_json(self):
        self.apify.json("POST", "acts/a1/run-sync-get-dataset-items", [{"title": "x"}])
        res = self.client.post(
            "/api/run-sync-get-dataset-items?actorId=a1&format=json",
            headers=HEADERS,
            json={"startUrls": [{"url": "https://example.com"}]},
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [{"title": "x"}])
        sent = self.apify.calls("POST", "acts/a1/run-sync-get-dataset-items")[0]
        self.assertEqual(request_json(sent), {"startUrls": [{"url": "https://example.com"}]})

    def test_sync_run_upstream_failure_is_relayed(self):
        self.apify.json(
            "GET",
            "acts/a1/run-sync-get-dataset-items",
            {"error": {"type": "run-timeout-exceeded", "message": "Run timed out"}},
            status_code=408,
        )
        res = self.client.get("/api/run-sync-get-dataset-items?actorId=a1", headers=HEADERS)
        self.assertEqual(res.status_code, 408)
        self.assertEqual(res.json()["error"]["type"], "run-timeout-exceeded")

    def test_network_error_is_unexpected_server_error(self):
        def _boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        self.apify.on("GET", "acts", _boom)
        res = self.client.get("/api/actors", headers=HEADERS)
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"error": "Unexpected server error"})

    def test_malformed_upstream_json_is_unexpected_server_error(self):
        self.apify.on(
            "GET",
            "actor-runs/r1",
            lambda _r: httpx.Response(200, content=b"{oops", headers={"Content-Type": "application/json"}),
        )
        res = self.client.get("/api/run?runId=r1", headers=HEADERS)
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"error": "Unexpected server error"})


class TestGatewayErrors(unittest.TestCase):
    def test_bad_request_defaults_to_catalog_message(self):
        err = bad_request()
        self.assertEqual((err.code, err.status_code, err.error), (ERR_BAD_REQUEST, 400, "Request body must be valid JSON"))
        self.assertEqual(bad_request("Run ID is required").error, "Run ID is required")

    def test_upstream_rejected_keeps_status_and_error(self):
        err = upstream_rejected(404, {"type": "record-not-found"})
        self.assertEqual((err.code, err.status_code), (ERR_UPSTREAM_REJECTED, 404))
        self.assertEqual(err.error, {"type": "record-not-found"})
        self.assertEqual(upstream_rejected(429).error, "Apify API error: 429")


if __name__ == "__main__":
    unittest.main()
