# tests/test_lifecycle_service.py

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import DuplicateKeyError

from app.db.requests_store import RequestStore
from app.models.request import (
    InscriereApproval,
    RequestCreate,
    RequestStatus,
    TrimitereApproval,
)
from app.services.lifecycle import RequestLifecycle
from app.services.pdf_generator import DocumentGenerator
from app.utils.errors import InvalidStateError, NotFoundError, ValidationError


class StepClock:
    """Each call is one minute after the previous one."""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(minutes=1)
        return value


class CountingGenerator:
    def __init__(self):
        self.calls = []

    def generate(self, patient, doctor, fields):
        self.calls.append(fields)
        return b"%PDF-final-" + fields.kind.encode()


@pytest.fixture
def store():
    return RequestStore(AsyncMongoMockClient()["portal_test"])


@pytest.fixture
def generator():
    return CountingGenerator()


@pytest.fixture
def lifecycle(store, generator, settings):
    clock = StepClock(datetime(2025, 3, 31, 22, 30, tzinfo=timezone.utc))
    return RequestLifecycle(store, generator, settings, clock=clock)


def run(coro):
    return asyncio.run(coro)


def test_create_starts_pending(lifecycle, inscriere_payload, trimitere_payload):
    inscriere = run(lifecycle.create(RequestCreate.model_validate(inscriere_payload)))
    trimitere = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))

    assert inscriere.status == RequestStatus.PENDING
    assert inscriere.pdf_data == b"\x00"
    assert inscriere.created_at == inscriere.updated_at
    assert trimitere.status == RequestStatus.PENDING
    assert trimitere.pdf_data is None
    assert trimitere.signature_data_url is None


def test_approval_outcome_per_type(lifecycle, inscriere_payload, trimitere_payload):
    inscriere = run(lifecycle.create(RequestCreate.model_validate(inscriere_payload)))
    trimitere = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))
    # 22:30 UTC on March 31st is already April 1st in Bucharest
    now = datetime(2025, 3, 31, 22, 30, tzinfo=timezone.utc)

    enrollment = lifecycle.approval_outcome(inscriere, now)
    assert isinstance(enrollment, InscriereApproval)
    assert enrollment.registration_number == str(inscriere.id)
    assert enrollment.registration_date == "01/04/2025"
    assert enrollment.clinic_cui == "RO12345678"

    referral = lifecycle.approval_outcome(trimitere, now)
    assert isinstance(referral, TrimitereApproval)
    assert referral.referral_specialty == "Cardiologie"
    assert referral.issue_date == "01.04.2025"


def test_approve_requires_signature_on_stored_inscriere(lifecycle, store, inscriere_payload):
    record = run(lifecycle.create(RequestCreate.model_validate(inscriere_payload)))
    run(store.requests.update_one({"id": record.id}, {"$set": {"signature_data_url": None}}))

    with pytest.raises(ValidationError, match="Missing signature"):
        run(lifecycle.approve(record.id))
    assert run(lifecycle.get(record.id)).status == RequestStatus.PENDING


def test_approve_requires_referral_specialty(lifecycle, store, trimitere_payload):
    record = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))
    run(store.requests.update_one({"id": record.id}, {"$set": {"referral_specialty": ""}}))

    with pytest.raises(ValidationError, match="Missing referral specialty"):
        run(lifecycle.approve(record.id))


def test_approve_overwrites_draft_and_refreshes_updated_at(lifecycle, generator, inscriere_payload):
    record = run(lifecycle.create(RequestCreate.model_validate(inscriere_payload)))

    approved = run(lifecycle.approve(record.id))
    assert approved.status == RequestStatus.APPROVED
    assert approved.pdf_data == b"%PDF-final-inscriere"
    assert approved.updated_at > record.updated_at
    assert approved.created_at == record.created_at
    assert len(generator.calls) == 1


def test_concurrent_approvals_only_one_wins(lifecycle, trimitere_payload):
    record = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))

    async def race():
        return await asyncio.gather(
            lifecycle.approve(record.id),
            lifecycle.approve(record.id),
            return_exceptions=True,
        )

    results = run(race())
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], InvalidStateError)
    assert run(lifecycle.get_pdf(record.id)) == b"%PDF-final-trimitere"


def test_reject_after_delete_is_not_found(lifecycle, trimitere_payload):
    record = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))
    assert run(lifecycle.delete(record.id)) == 1

    with pytest.raises(NotFoundError):
        run(lifecycle.reject(record.id))
    with pytest.raises(NotFoundError):
        run(lifecycle.delete(record.id))


def test_delete_all_counts_rows(lifecycle, trimitere_payload):
    assert run(lifecycle.delete_all()) == 0
    for _ in range(3):
        run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))

    assert run(lifecycle.delete_all()) == 3
    assert run(lifecycle.list_all()) == []


def test_list_by_patient_newest_first(lifecycle, trimitere_payload):
    older = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))
    run(lifecycle.create(RequestCreate.model_validate({**trimitere_payload, "patientCnp": "2850101123456"})))
    newer = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))

    records = run(lifecycle.list_by_patient("1901213254491"))
    assert [r.id for r in records] == [newer.id, older.id]
    assert records[0].created_at > records[1].created_at


def test_list_all_rejects_non_positive_limit(lifecycle):
    with pytest.raises(ValidationError):
        run(lifecycle.list_all(0))


def test_ids_are_unique(store):
    run(store.ensure_indexes())
    run(store.requests.insert_one({"id": 7}))
    with pytest.raises(DuplicateKeyError):
        run(store.requests.insert_one({"id": 7}))


def test_real_generator_output_is_stored(store, settings, trimitere_payload):
    lifecycle = RequestLifecycle(store, DocumentGenerator(settings.TIMEZONE), settings)
    record = run(lifecycle.create(RequestCreate.model_validate(trimitere_payload)))

    approved = run(lifecycle.approve(record.id))
    assert approved.pdf_data.startswith(b"%PDF")


def test_transition_returns_the_updated_record(store):
    now = datetime(2025, 4, 1, 9, 0, tzinfo=timezone.utc)
    record = run(store.insert({
        "type": "trimitere",
        "status": "pending",
        "patient_name": "GEORGESCU ANDREI",
        "patient_cnp": "1901213254491",
        "doctor_name": "Dr. Popescu",
        "referral_specialty": "Cardiologie",
        "created_at": now,
        "updated_at": now,
    }))

    moved = run(store.transition(record.id, RequestStatus.PENDING, {"status": "rejected", "updated_at": now}))
    assert moved is not None
    assert moved.id == record.id
    assert moved.status == RequestStatus.REJECTED

    # Already moved on, so a second compare-and-set matches nothing
    assert run(store.transition(record.id, RequestStatus.PENDING, {"status": "approved"})) is None
    assert run(store.get(record.id)).status == RequestStatus.REJECTED


def test_create_refuses_unreadable_signature(lifecycle, store, inscriere_payload):
    inscriere_payload["signatureDataUrl"] = "data:..."
    with pytest.raises(ValidationError, match="signatureDataUrl"):
        run(lifecycle.create(RequestCreate.model_validate(inscriere_payload)))
    assert run(store.count({})) == 0
