# app/models/request.py

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RequestType(str, Enum):
    INSCRIERE = "inscriere"
    TRIMITERE = "trimitere"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
    )


class PatientAddress(CamelModel):
    street: str = ""
    number: Optional[str] = None
    block: Optional[str] = None
    entrance: Optional[str] = None
    apartment: Optional[str] = None
    sector: str = ""


class RequestCreate(CamelModel):
    """Payload of a patient submission. Per-type rules are enforced by the lifecycle service."""

    type: RequestType = RequestType.INSCRIERE

    patient_name: Optional[str] = None
    patient_cnp: Optional[str] = None
    patient_birth_date: str = ""
    patient_citizenship: str = ""
    patient_address: PatientAddress = Field(default_factory=PatientAddress)

    id_type: str = ""
    id_series: str = ""
    id_number: str = ""
    id_issued_by: str = ""
    id_issue_date: str = ""

    doctor_name: Optional[str] = None
    doctor_specialty: Optional[str] = None
    referral_specialty: Optional[str] = None

    signature_data_url: Optional[str] = None
    # base64 of the client-prepared draft (inscriere only)
    pdf_data: Optional[str] = None


class RequestRecord(CamelModel):
    """A stored request. Blob fields never leave the service as JSON."""

    id: int
    type: RequestType
    status: RequestStatus

    patient_name: str
    patient_cnp: str
    patient_birth_date: str = ""
    patient_citizenship: str = ""
    patient_address: PatientAddress = Field(default_factory=PatientAddress)

    id_type: str = ""
    id_series: str = ""
    id_number: str = ""
    id_issued_by: str = ""
    id_issue_date: str = ""

    doctor_name: str
    doctor_specialty: Optional[str] = None
    referral_specialty: Optional[str] = None

    signature_data_url: Optional[str] = Field(default=None, exclude=True)
    pdf_data: Optional[bytes] = Field(default=None, exclude=True)

    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        # Mongo hands back naive UTC unless the client is tz_aware
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("pdf_data", mode="before")
    @classmethod
    def _as_bytes(cls, v):
        if v is None or isinstance(v, bytes):
            return v
        return bytes(v)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class StatusUpdate(CamelModel):
    status: RequestStatus


# -----------------------------
# Document generator inputs
# -----------------------------

class PatientData(CamelModel):
    name: str
    cnp: str
    birth_date: str = ""
    citizenship: str = ""
    address: PatientAddress = Field(default_factory=PatientAddress)
    id_type: str = ""
    id_series: str = ""
    id_number: str = ""
    id_issued_by: str = ""
    id_issue_date: str = ""


class DoctorData(CamelModel):
    name: str
    specialty: Optional[str] = None


class InscriereApproval(BaseModel):
    """Administrative fields filled in when an enrollment is approved."""
    kind: Literal["inscriere"] = "inscriere"
    signature_data_url: str
    registration_number: str
    registration_date: str
    clinic_name: str
    clinic_cui: str
    clinic_address: str
    insurance_house: str
    contract_number: str


class TrimitereApproval(BaseModel):
    kind: Literal["trimitere"] = "trimitere"
    referral_specialty: str
    issue_date: str


ApprovalOutcome = Annotated[
    Union[InscriereApproval, TrimitereApproval],
    Field(discriminator="kind"),
]


class DraftPdfRequest(CamelModel):
    """Body of /api/generate-pdf: an enrollment draft rendered before submission."""
    signature_data_url: Optional[str] = None
    doctor_name: Optional[str] = None
    user_data: Optional[PatientData] = None


def patient_data_from(record: RequestRecord) -> PatientData:
    return PatientData(
        name=record.patient_name,
        cnp=record.patient_cnp,
        birth_date=record.patient_birth_date,
        citizenship=record.patient_citizenship,
        address=record.patient_address,
        id_type=record.id_type,
        id_series=record.id_series,
        id_number=record.id_number,
        id_issued_by=record.id_issued_by,
        id_issue_date=record.id_issue_date,
    )


def doctor_data_from(record: RequestRecord) -> DoctorData:
    return DoctorData(name=record.doctor_name, specialty=record.doctor_specialty)
