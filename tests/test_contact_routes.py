import asyncio

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.v1.contacts.service import ContactService
from api.v1.infra.email_queue.models import EmailJobStatus, EmailJobType
from api.v1.infra.email_queue.service import EmailQueueService
from api.v1.infra.email_queue.store import SqlAlchemyJobStore

VALID_PAYLOAD = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "message": "I would like to talk about a project.",
}


def test_submit_contact_enqueues_both_variants(client: TestClient, api_database):
    """Test a submission stores the contact and queues owner + sender emails."""
    response = client.post("/v1/contact", json=VALID_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    assert body["message"] == "Message received"

    contact_id = body["data"]["id"]
    job_ids = body["data"]["email_job_ids"]
    assert len(job_ids) == 2

    async def load():
        store = SqlAlchemyJobStore(api_database.SessionLocal)
        contact = await ContactService(api_database.SessionLocal).resolve(contact_id)
        jobs = [await store.get_by_id(job_id) for job_id in job_ids]
        return contact, jobs

    contact, jobs = asyncio.run(load())
    assert contact.name == "Jane Doe"
    assert contact.email == "jane@example.com"
    assert [job.type for job in jobs] == [
        EmailJobType.CONTACT_NOTIFY_OWNER.value,
        EmailJobType.CONTACT_REPLY_SENDER.value,
    ]
    for job in jobs:
        assert job.status == EmailJobStatus.PENDING.value
        assert job.contact_id == contact_id
        assert job.attempts == 0


def test_submit_contact_strips_whitespace(client: TestClient, api_database):
    response = client.post(
        "/v1/contact",
        json={**VALID_PAYLOAD, "name": "  Jane  ", "message": "  Hi  "},
    )

    assert response.status_code == 201
    contact_id = response.json()["data"]["id"]
    contact = asyncio.run(ContactService(api_database.SessionLocal).resolve(contact_id))
    assert contact.name == "Jane"
    assert contact.message == "Hi"


def test_submit_contact_rejects_invalid_email(client: TestClient):
    response = client.post("/v1/contact", json={**VALID_PAYLOAD, "email": "not-an-email"})
    assert response.status_code == 422


def test_submit_contact_rejects_blank_fields(client: TestClient):
    response = client.post("/v1/contact", json={**VALID_PAYLOAD, "name": "   "})
    assert response.status_code == 422

    response = client.post("/v1/contact", json={**VALID_PAYLOAD, "message": ""})
    assert response.status_code == 422


def test_submit_contact_rejects_missing_fields(client: TestClient):
    response = client.post("/v1/contact", json={"name": "Jane"})
    assert response.status_code == 422


def test_enqueue_failure_does_not_fail_submission(client: TestClient, monkeypatch):
    """Test the contact is still accepted when the queue write fails."""

    async def broken_enqueue(self, contact_id):
        raise OperationalError("INSERT INTO email_jobs", {}, Exception("disk full"))

    monkeypatch.setattr(EmailQueueService, "enqueue_for_contact", broken_enqueue)

    response = client.post("/v1/contact", json=VALID_PAYLOAD)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["id"]
    assert data["email_job_ids"] == []


def test_request_id_header(client: TestClient):
    response = client.post("/v1/contact", json=VALID_PAYLOAD)

    assert response.headers["X-Request-ID"] == response.json()["request_id"]
