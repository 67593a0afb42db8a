# app/services/lifecycle.py

import asyncio
import base64
import binascii
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from app.core.config import Settings
from app.core.logger import get_logger
from app.db.requests_store import RequestStore
from app.models.request import (
    ApprovalOutcome,
    InscriereApproval,
    RequestCreate,
    RequestRecord,
    RequestStatus,
    RequestType,
    TrimitereApproval,
    doctor_data_from,
    patient_data_from,
)
from app.services.pdf_generator import DocumentGenerator, executor, validate_signature
from app.utils.errors import InvalidStateError, NotFoundError, ValidationError

logger = get_logger("lifecycle")

REQUIRED_ON_CREATE = {
    RequestType.INSCRIERE: ("patient_name", "patient_cnp", "doctor_name", "pdf_data", "signature_data_url"),
    RequestType.TRIMITERE: ("patient_name", "patient_cnp", "doctor_name", "referral_specialty"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _decode_pdf(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"pdfData is not valid base64: {e}") from e


class RequestLifecycle:
    """Owns every status change of a request and the document it produces.

    pending -> approved (renders the final PDF) or pending -> rejected. Both end
    states are terminal. Each transition is a single conditional update keyed on
    `status == pending`, so concurrent callers cannot both win.
    """

    def __init__(
        self,
        store: RequestStore,
        generator: DocumentGenerator,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.generator = generator
        self.settings = settings
        self.clock = clock
        self.tz = ZoneInfo(settings.TIMEZONE)

    # -----------------------------
    # Transitions
    # -----------------------------

    async def create(self, payload: RequestCreate) -> RequestRecord:
        missing = [
            name for name in REQUIRED_ON_CREATE[payload.type]
            if _blank(getattr(payload, name))
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        pdf_data = None
        if payload.type == RequestType.INSCRIERE:
            pdf_data = _decode_pdf(payload.pdf_data)
            if not pdf_data:
                raise ValidationError("Missing required fields: pdf_data")
            validate_signature(payload.signature_data_url)
        elif payload.pdf_data or payload.signature_data_url:
            raise ValidationError("trimitere requests carry no PDF or signature until approval")

        now = self.clock()
        fields = payload.model_dump(exclude={"pdf_data"})
        fields.update(
            type=payload.type.value,
            status=RequestStatus.PENDING.value,
            patient_name=payload.patient_name.strip(),
            patient_cnp=payload.patient_cnp.strip(),
            doctor_name=payload.doctor_name.strip(),
            pdf_data=pdf_data,
            created_at=now,
            updated_at=now,
        )
        if payload.type == RequestType.INSCRIERE:
            fields["referral_specialty"] = None

        record = await self.store.insert(fields)
        logger.info(f"Created {record.type.value} request {record.id} for doctor '{record.doctor_name}'")
        return record

    async def approve(self, request_id: int) -> RequestRecord:
        record = await self.get(request_id)
        if not record.is_pending:
            raise InvalidStateError(f"Request {request_id} is not pending (status: {record.status.value})")

        now = self.clock()
        outcome = self.approval_outcome(record, now)

        loop = asyncio.get_running_loop()
        pdf_bytes = await loop.run_in_executor(executor, lambda: self.generator.generate(
            patient_data_from(record),
            doctor_data_from(record),
            outcome,
        ))

        updated = await self.store.transition(
            request_id,
            expected=RequestStatus.PENDING,
            changes={
                "status": RequestStatus.APPROVED.value,
                "pdf_data": pdf_bytes,
                "updated_at": now,
            },
        )
        if updated is None:
            await self._raise_lost_transition(request_id)

        logger.info(f"Approved request {request_id} ({len(pdf_bytes)} byte PDF)")
        return updated

    async def reject(self, request_id: int) -> RequestRecord:
        record = await self.get(request_id)
        if not record.is_pending:
            raise InvalidStateError(f"Request {request_id} is not pending (status: {record.status.value})")

        updated = await self.store.transition(
            request_id,
            expected=RequestStatus.PENDING,
            changes={"status": RequestStatus.REJECTED.value, "updated_at": self.clock()},
        )
        if updated is None:
            await self._raise_lost_transition(request_id)

        logger.info(f"Rejected request {request_id}")
        return updated

    async def delete(self, request_id: int) -> int:
        deleted = await self.store.delete(request_id)
        if not deleted:
            raise NotFoundError(f"Request {request_id} not found")
        logger.info(f"Deleted request {request_id}")
        return deleted

    async def delete_all(self) -> int:
        deleted = await self.store.delete_all()
        logger.info(f"Deleted all requests ({deleted} removed)")
        return deleted

    def approval_outcome(self, record: RequestRecord, now: datetime) -> ApprovalOutcome:
        """Administrative fields computed at approval time, per request type."""
        local = now.astimezone(self.tz)
        if record.type == RequestType.INSCRIERE:
            if _blank(record.signature_data_url):
                raise ValidationError("Missing signature for inscriere request")
            return InscriereApproval(
                signature_data_url=record.signature_data_url,
                registration_number=str(record.id),
                registration_date=local.strftime("%d/%m/%Y"),
                clinic_name=self.settings.CLINIC_NAME,
                clinic_cui=self.settings.CLINIC_CUI,
                clinic_address=self.settings.CLINIC_ADDRESS,
                insurance_house=self.settings.INSURANCE_HOUSE,
                contract_number=self.settings.CONTRACT_NUMBER,
            )
        if _blank(record.referral_specialty):
            raise ValidationError("Missing referral specialty for trimitere request")
        return TrimitereApproval(
            referral_specialty=record.referral_specialty,
            issue_date=local.strftime("%d.%m.%Y"),
        )

    async def _raise_lost_transition(self, request_id: int) -> None:
        current = await self.store.get(request_id)
        if current is None:
            raise NotFoundError(f"Request {request_id} not found")
        raise InvalidStateError(f"Request {request_id} is not pending (status: {current.status.value})")

    # -----------------------------
    # Queries
    # -----------------------------

    async def get(self, request_id: int) -> RequestRecord:
        record = await self.store.get(request_id)
        if record is None:
            raise NotFoundError(f"Request {request_id} not found")
        return record

    async def get_pdf(self, request_id: int) -> Optional[bytes]:
        doc = await self.store.get_pdf(request_id)
        if doc is None:
            raise NotFoundError(f"Request {request_id} not found")
        pdf = doc.get("pdf_data")
        return bytes(pdf) if pdf is not None else None

    async def list_by_patient(self, cnp: str) -> List[RequestRecord]:
        return await self.store.find({"patient_cnp": cnp})

    async def list_all(self, limit: Optional[int] = None) -> List[RequestRecord]:
        limit = self.settings.REQUESTS_LIST_LIMIT if limit is None else limit
        if limit <= 0:
            raise ValidationError("limit must be a positive integer")
        return await self.store.find({}, limit=limit)

    async def list_pending(self) -> Tuple[int, List[RequestRecord]]:
        query = {"status": RequestStatus.PENDING.value}
        count = await self.store.count(query)
        return count, await self.store.find(query)
