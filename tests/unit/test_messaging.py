"""Tests for the FireFly client and batch intake."""

import json

import httpx
import pytest

from certledger.common.exceptions import ChannelError, ValidationError
from certledger.messaging.client import FireFlyClient
from certledger.messaging.intake import BatchIntake, parse_submission
from tests.fakes import student, submission_payload

ORGS = [
    {"name": "cardiff-met", "did": "did:firefly:org/cardiff-met"},
    {"name": "icbt-campus", "did": "did:firefly:org/icbt-campus"},
]


def _client(handler) -> FireFlyClient:
    return FireFlyClient("http://firefly:5000", transport=httpx.MockTransport(handler))


class TestFireFlyClient:
    async def test_get_messages(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/namespaces/default/messages"
            assert request.url.params["type"] == "private"
            assert request.url.params["limit"] == "10"
            return httpx.Response(200, json=[{"header": {"id": "m1"}}])

        assert await _client(handler).get_messages(10) == [{"header": {"id": "m1"}}]

    async def test_retrieve_data(self):
        def handler(request: httpx.Request) -> httpx.Response:
            data_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"id": data_id, "value": "{}"})

        items = await _client(handler).retrieve_data([{"id": "d1"}, {"id": "d2"}])
        assert [i["id"] for i in items] == ["d1", "d2"]

    async def test_org_identity(self):
        client = _client(lambda request: httpx.Response(200, json=ORGS))
        assert await client.get_org_identity("icbt-campus") == "did:firefly:org/icbt-campus"

    async def test_unknown_org(self):
        client = _client(lambda request: httpx.Response(200, json=ORGS))
        with pytest.raises(ChannelError, match="Available"):
            await client.get_org_identity("nowhere")

    async def test_send_private(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            if request.url.path == "/api/v1/network/organizations":
                return httpx.Response(200, json=ORGS)
            if request.url.path.endswith("/data"):
                body = json.loads(request.content)
                assert json.loads(body["value"])["type"] == "CERTIFICATE_PDFS_ISSUED"
                return httpx.Response(201, json={"id": "data-1"})
            body = json.loads(request.content)
            assert body["data"] == [{"id": "data-1"}]
            assert body["group"]["members"] == [{"identity": "did:firefly:org/icbt-campus"}]
            return httpx.Response(202, json={"header": {"id": "msg-1"}})

        result = await _client(handler).send_private({"type": "CERTIFICATE_PDFS_ISSUED"}, "icbt-campus")
        assert result["header"]["id"] == "msg-1"
        assert calls[-1] == ("POST", "/api/v1/namespaces/default/messages/private")

    async def test_upload_blob(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["content-type"].startswith("multipart/form-data")
            assert b"%PDF-1.4" in request.content
            assert b"CERT_B1_ST1_1.pdf" in request.content
            return httpx.Response(201, json={"id": "blob-1", "hash": "h", "blob": {"size": 8}})

        blob = await _client(handler).upload_blob(
            b"%PDF-1.4", {"filename": "CERT_B1_ST1_1.pdf", "metadata": {"student_id": "ST1"}},
        )
        assert blob == {"id": "blob-1", "hash": "h", "size": 8}

    async def test_http_error_propagates(self):
        client = _client(lambda request: httpx.Response(500))
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_status()


class TestParseSubmission:
    def test_valid_json_text(self):
        submission, envelope = parse_submission(json.dumps(submission_payload()))
        assert submission.batch_id == "B1"
        assert len(submission.students) == 3
        assert envelope["from"] == "icbt-campus"

    def test_decoded_object(self):
        submission, _ = parse_submission(submission_payload(students=1))
        assert submission.metadata.faculty == "Technology"

    def test_not_json(self):
        with pytest.raises(ValidationError, match="JSON"):
            parse_submission("{not json")

    def test_wrong_type(self):
        payload = submission_payload()
        payload["type"] = "CERTIFICATE_PDFS_ISSUED"
        with pytest.raises(ValidationError, match="Unsupported"):
            parse_submission(payload)

    def test_missing_metadata_field(self):
        payload = submission_payload()
        del payload["batch"]["metadata"]["contact_email"]
        with pytest.raises(ValidationError, match="contact_email"):
            parse_submission(payload)

    def test_bad_gpa(self):
        payload = submission_payload()
        payload["batch"]["students"][0]["gpa"] = 5.1
        with pytest.raises(ValidationError, match="gpa"):
            parse_submission(payload)

    def test_duplicate_students(self):
        payload = submission_payload()
        payload["batch"]["students"].append(student(1))
        with pytest.raises(ValidationError, match="unique"):
            parse_submission(payload)

    def test_empty_student_list(self):
        payload = submission_payload(students=0)
        with pytest.raises(ValidationError):
            parse_submission(payload)


class TestBatchIntake:
    async def test_sync_inbox_records_submissions(self, settings, channel, store, db):
        channel.deliver("m1", submission_payload("B1"))
        channel.deliver("m2", submission_payload("B2", to="someone-else"))
        channel.deliver("m3", {"type": "CHAT", "text": "hello"})
        intake = BatchIntake(settings, channel, store)

        async with db.get_session() as session:
            inbox = await intake.sync_inbox(session)
        assert [m.message_id for m in inbox] == ["m1"]
        assert inbox[0].heading == "New Batch: Computing Summer 2025"
        assert inbox[0].sender == "icbt-campus"
        assert inbox[0].viewed is False

    async def test_sync_inbox_is_idempotent(self, settings, channel, store, db):
        channel.deliver("m1", submission_payload("B1"))
        intake = BatchIntake(settings, channel, store)
        async with db.get_session() as session:
            await intake.sync_inbox(session)
            await store.mark_viewed(session, "m1")
        async with db.get_session() as session:
            inbox = await intake.sync_inbox(session)
        assert len(inbox) == 1
        assert inbox[0].viewed is True

    async def test_ingest_creates_batch(self, settings, channel, store, db):
        channel.deliver("m1", submission_payload("B1", students=4))
        intake = BatchIntake(settings, channel, store)
        async with db.get_session() as session:
            batch = await intake.ingest(session, "m1")
            students = await store.get_students(session, "B1")
            message = await store.get_inbox_message(session, "m1")
        assert batch.batch_id == "B1"
        assert batch.message_id == "m1"
        assert batch.status == "submitted"
        assert [s.student_id for s in students] == ["ST00001", "ST00002", "ST00003", "ST00004"]
        assert message.processed is True

    async def test_duplicate_delivery_ignored(self, settings, channel, store, db):
        channel.deliver("m1", submission_payload("B1"))
        channel.deliver("m1-redelivered", submission_payload("B1"))
        intake = BatchIntake(settings, channel, store)
        async with db.get_session() as session:
            first = await intake.ingest(session, "m1")
        async with db.get_session() as session:
            again = await intake.ingest(session, "m1")
            redelivered = await intake.ingest(session, "m1-redelivered")
            students = await store.get_students(session, "B1")
        assert first.batch_id == again.batch_id == redelivered.batch_id == "B1"
        assert len(students) == 3

    async def test_ingest_unknown_message(self, settings, channel, store, db):
        intake = BatchIntake(settings, channel, store)
        async with db.get_session() as session:
            with pytest.raises(ValidationError, match="not found"):
                await intake.ingest(session, "missing")

    async def test_system_assigned_batch_id(self, settings, channel, store, db):
        payload = submission_payload()
        del payload["batch"]["batch_id"]
        channel.deliver("m1", payload)
        intake = BatchIntake(settings, channel, store)
        async with db.get_session() as session:
            batch = await intake.ingest(session, "m1")
        assert batch.batch_id.startswith("batch_")
