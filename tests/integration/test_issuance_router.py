"""Integration tests for the issuance router — admin API key required."""

import base64

from tests.fakes import submission_payload


async def _submit(client, headers, batch_id="B1", students=3):
    resp = await client.post(
        "/api/batches", json=submission_payload(batch_id, students)["batch"], headers=headers,
    )
    assert resp.status_code == 201
    return resp.json()


class TestAuth:
    async def test_requires_header(self, client):
        resp = await client.get("/api/batches")
        assert resp.status_code == 422

    async def test_wrong_key(self, client):
        resp = await client.get("/api/batches", headers={"X-CertLedger-Api-Key": "wrong"})
        assert resp.status_code == 403


class TestBatches:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["service"] == "certledger"

    async def test_submit_batch(self, client, admin_headers):
        data = await _submit(client, admin_headers)
        assert data["batch_id"] == "B1"
        assert data["status"] == "submitted"
        assert data["students_count"] == 3
        assert data["transaction_id"] is None

    async def test_submit_duplicate_batch(self, client, admin_headers):
        await _submit(client, admin_headers)
        resp = await client.post(
            "/api/batches", json=submission_payload("B1")["batch"], headers=admin_headers,
        )
        assert resp.status_code == 409

    async def test_submit_invalid_batch(self, client, admin_headers):
        body = submission_payload()["batch"]
        body["students"][0]["gpa"] = 9
        resp = await client.post("/api/batches", json=body, headers=admin_headers)
        assert resp.status_code == 422

    async def test_get_batch_with_students(self, client, admin_headers):
        await _submit(client, admin_headers)
        resp = await client.get("/api/batches/B1", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert [s["student_id"] for s in data["students"]] == ["ST00001", "ST00002", "ST00003"]

    async def test_get_missing_batch(self, client, admin_headers):
        resp = await client.get("/api/batches/nope", headers=admin_headers)
        assert resp.status_code == 404

    async def test_list_batches(self, client, admin_headers):
        await _submit(client, admin_headers, "B1")
        await _submit(client, admin_headers, "B2")
        resp = await client.get("/api/batches", headers=admin_headers)
        assert {b["batch_id"] for b in resp.json()} == {"B1", "B2"}

    async def test_update_status(self, client, admin_headers):
        await _submit(client, admin_headers)
        resp = await client.patch(
            "/api/batches/B1/status",
            json={"status": "failed", "notes": "withdrawn by partner"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "failed"
        assert resp.json()["status_notes"] == "withdrawn by partner"

        logs = await client.get("/api/batches/B1/logs", headers=admin_headers)
        assert "status_update" in [entry["action"] for entry in logs.json()]

    async def test_update_status_rejects_unknown(self, client, admin_headers):
        await _submit(client, admin_headers)
        resp = await client.patch(
            "/api/batches/B1/status", json={"status": "archived"}, headers=admin_headers,
        )
        assert resp.status_code == 422


class TestIssue:
    async def test_issue_batch(self, client, admin_headers, ledger, channel):
        await _submit(client, admin_headers)
        resp = await client.post("/api/batches/B1/issue", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["status"] == "completed"
        assert data["students_processed"] == 3
        assert data["transaction_id"] in ledger.indexed
        assert data["explorer_url"].startswith("https://preprod.cardanoscan.io/transaction/")
        assert all(s["transaction_hash"] == data["transaction_id"] for s in data["students"])
        assert len(channel.sent) == 1

        students = await client.get("/api/batches/B1/students", headers=admin_headers)
        assert all(s["status"] == "certified" for s in students.json())

    async def test_issue_twice_returns_same_transaction(self, client, admin_headers, ledger):
        await _submit(client, admin_headers)
        first = (await client.post("/api/batches/B1/issue", headers=admin_headers)).json()
        second = (await client.post("/api/batches/B1/issue", headers=admin_headers)).json()
        assert second["transaction_id"] == first["transaction_id"]
        assert "already issued" in second["message"]
        assert ledger.submissions == 1

    async def test_issue_missing_batch(self, client, admin_headers):
        resp = await client.post("/api/batches/nope/issue", headers=admin_headers)
        assert resp.status_code == 404

    async def test_insufficient_funds(self, client, admin_headers, ledger):
        await _submit(client, admin_headers)
        ledger.balance = 0
        resp = await client.post("/api/batches/B1/issue", headers=admin_headers)
        assert resp.status_code == 402

        batch = (await client.get("/api/batches/B1", headers=admin_headers)).json()
        assert batch["status"] == "failed"
        assert batch["transaction_id"] is None
        assert all(s["transaction_hash"] is None for s in batch["students"])

    async def test_ledger_rejection(self, client, admin_headers, ledger):
        import httpx

        await _submit(client, admin_headers)
        request = httpx.Request("POST", "https://node/tx/submit")
        ledger.submit_errors = [httpx.HTTPStatusError(
            "rejected", request=request, response=httpx.Response(400, request=request),
        )]
        resp = await client.post("/api/batches/B1/issue", headers=admin_headers)
        assert resp.status_code == 502

    async def test_notification_failure_still_succeeds(self, client, admin_headers, channel):
        await _submit(client, admin_headers)
        channel.fail_send = True
        resp = await client.post("/api/batches/B1/issue", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        assert resp.json()["warnings"]

        channel.fail_send = False
        resp = await client.post("/api/batches/B1/notify", headers=admin_headers)
        assert resp.status_code == 200
        assert len(channel.sent) == 1

    async def test_notify_uncommitted(self, client, admin_headers):
        await _submit(client, admin_headers)
        resp = await client.post("/api/batches/B1/notify", headers=admin_headers)
        assert resp.status_code == 400


class TestInbox:
    async def test_list_inbox(self, client, admin_headers, channel):
        channel.deliver("m1", submission_payload("B1"))
        resp = await client.get("/api/inbox", headers=admin_headers)
        assert resp.status_code == 200
        messages = resp.json()
        assert len(messages) == 1
        assert messages[0]["heading"] == "New Batch: Computing Summer 2025"
        assert messages[0]["processed"] is False

    async def test_mark_viewed(self, client, admin_headers, channel):
        channel.deliver("m1", submission_payload("B1"))
        await client.get("/api/inbox", headers=admin_headers)
        resp = await client.post("/api/inbox/m1/viewed", headers=admin_headers)
        assert resp.status_code == 204
        unviewed = await client.get("/api/inbox?viewed=false", headers=admin_headers)
        assert unviewed.json() == []

    async def test_mark_unknown_viewed(self, client, admin_headers):
        resp = await client.post("/api/inbox/nope/viewed", headers=admin_headers)
        assert resp.status_code == 404

    async def test_ingest(self, client, admin_headers, channel):
        channel.deliver("m1", submission_payload("B1", students=2))
        resp = await client.post("/api/inbox/m1/ingest", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["batch_id"] == "B1"
        assert resp.json()["students_count"] == 2

        again = await client.post("/api/inbox/m1/ingest", headers=admin_headers)
        assert again.json()["batch_id"] == "B1"

    async def test_ingest_malformed(self, client, admin_headers, channel):
        payload = submission_payload("B1")
        del payload["batch"]["metadata"]["faculty"]
        channel.deliver("m1", payload)
        resp = await client.post("/api/inbox/m1/ingest", headers=admin_headers)
        assert resp.status_code == 400

    async def test_issue_from_message(self, client, admin_headers, channel, ledger):
        channel.deliver("m1", submission_payload("B1"))
        resp = await client.post("/api/inbox/m1/issue", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["transaction_id"] in ledger.indexed
        assert channel.sent[0][1] == "icbt-campus"


class TestCertificates:
    async def _issued_hash(self, client, headers) -> str:
        await _submit(client, headers)
        data = (await client.post("/api/batches/B1/issue", headers=headers)).json()
        return data["students"][0]["certificate_hash"]

    async def test_download(self, client, admin_headers):
        certificate_hash = await self._issued_hash(client, admin_headers)
        resp = await client.get(f"/api/certificates/{certificate_hash}/download")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.content.startswith(b"%PDF")

    async def test_downloaded_bytes_hash_to_certificate_hash(self, client, admin_headers):
        from certledger.documents.renderer import content_hash

        certificate_hash = await self._issued_hash(client, admin_headers)
        resp = await client.get(f"/api/certificates/{certificate_hash}/download")
        assert content_hash(resp.content) == certificate_hash

    async def test_base64_variant(self, client, admin_headers):
        certificate_hash = await self._issued_hash(client, admin_headers)
        resp = await client.get(f"/api/certificates/{certificate_hash}/pdf")
        assert resp.status_code == 200
        data = resp.json()
        assert base64.b64decode(data["pdf_base64"]).startswith(b"%PDF")
        assert data["download_url"] == f"/api/certificates/{certificate_hash}/download"

    async def test_unknown_certificate(self, client):
        resp = await client.get(f"/api/certificates/{'0' * 64}/download")
        assert resp.status_code == 404


class TestLedgerStatus:
    async def test_status(self, client, admin_headers):
        resp = await client.get("/api/ledger/status", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["can_transact"] is True
        assert data["balance_ada"] == 50.0
        assert data["network"] == "preprod"
