# app/services/pdf_generator.py

import base64
import io
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from app.core.logger import get_logger
from app.models.request import (
    ApprovalOutcome,
    DoctorData,
    InscriereApproval,
    PatientData,
    TrimitereApproval,
)
from app.utils.errors import DocumentGenerationError, ValidationError

logger = get_logger("pdf")
executor = ThreadPoolExecutor()

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
LINE_HEIGHT = 7 * mm
FIELD_SPACING = 8 * mm

SIGNATURE_WIDTH = 80 * mm
SIGNATURE_HEIGHT = 30 * mm

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

# The base-14 fonts have no glyphs for these
DIACRITICS = str.maketrans({
    "ă": "a", "â": "a", "î": "i", "ș": "s", "ş": "s", "ț": "t", "ţ": "t",
    "Ă": "A", "Â": "A", "Î": "I", "Ș": "S", "Ş": "S", "Ț": "T", "Ţ": "T",
})

TRANSFER_STATEMENT = (
    "Declar pe propria raspundere ca nu solicit transferul mai devreme de "
    "6 luni calendaristice de la ultima inscriere."
)

BLANK_DECLARATION = (
    "Subsemnatul _________________________, cetatenie____________________, "
    "C.N.P. I__I__I__I__I__I__I__I__I__I__I__I__I__I, data nasterii________________________, "
    "domiciliat(a) in ___________________ str._________________, nr._____, bl._____, "
    "sc.____, ap._____, jud./sector __________, act de identitate ______________, "
    "seria___________, nr___________, eliberat de __________________, la data_____________, "
    "solicit inscrierea mea pe lista dumneavoastra prin transfer."
)


def replace_diacritics(text: str) -> str:
    return text.translate(DIACRITICS)


def decode_data_url(data_url: str) -> bytes:
    header, sep, payload = (data_url or "").partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValueError("signature is not a base64 data URL")
    return base64.b64decode(payload, validate=True)


def load_signature(data_url: str) -> ImageReader:
    img = Image.open(io.BytesIO(decode_data_url(data_url)))
    img.load()
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    return ImageReader(img)


def validate_signature(data_url: str) -> None:
    """Refuse a signature that the enrollment template could not draw."""
    try:
        load_signature(data_url)
    except (ValueError, OSError) as e:
        raise ValidationError(f"signatureDataUrl is not a readable image: {e}") from e


def format_address(patient: PatientData) -> str:
    address = patient.address
    parts = [
        address.street,
        address.number and f"nr.{address.number}",
        address.block and f"bl.{address.block}",
        address.entrance and f"sc.{address.entrance}",
        address.apartment and f"ap.{address.apartment}",
    ]
    return ", ".join(p for p in parts if p)


def patient_declaration(patient: PatientData) -> str:
    cnp = "".join(patient.cnp.split())
    return (
        f"Subsemnatul (a) {patient.name}, cetatenie {patient.citizenship}, C.N.P. {cnp}, "
        f"data nasterii {patient.birth_date}, domiciliat(a) in {format_address(patient)}, "
        f"jud./sector {patient.address.sector}, act de identitate {patient.id_type}, "
        f"seria {patient.id_series}, nr {patient.id_number}, eliberat de {patient.id_issued_by}, "
        f"la data {patient.id_issue_date}, solicit inscrierea mea pe lista dumneavoastra prin transfer."
    )


class _Writer:
    """Top-down text cursor over a reportlab canvas."""

    def __init__(self, pdf: canvas.Canvas):
        self.pdf = pdf
        self.y = PAGE_HEIGHT - MARGIN

    def text(self, text: str, size: float = 10, bold: bool = False, advance: float = FIELD_SPACING):
        self.pdf.setFont(FONT_BOLD if bold else FONT, size)
        self.pdf.drawString(MARGIN, self.y, replace_diacritics(text))
        self.y -= advance

    def paragraph(self, text: str, size: float = 10) -> None:
        self.pdf.setFont(FONT, size)
        lines: List[str] = simpleSplit(replace_diacritics(text), FONT, size, CONTENT_WIDTH)
        for line in lines:
            self.ensure_room(LINE_HEIGHT)
            self.pdf.drawString(MARGIN, self.y, line)
            self.y -= LINE_HEIGHT

    def skip(self, amount: float) -> None:
        self.y -= amount

    def ensure_room(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.pdf.showPage()
            self.y = PAGE_HEIGHT - MARGIN


def _labelled(label: str, value: Optional[str]) -> str:
    return f"{label}: {value}" if value else label


class DocumentGenerator:
    """Renders the enrollment form and the referral letter as PDF bytes.

    Rendering is synchronous and CPU bound; async callers should push it to an executor.
    """

    def __init__(self, timezone_name: str = "Europe/Bucharest"):
        self.tz = ZoneInfo(timezone_name)

    def today(self) -> date:
        return datetime.now(self.tz).date()

    def generate(self, patient: PatientData, doctor: DoctorData, fields: ApprovalOutcome) -> bytes:
        try:
            if isinstance(fields, InscriereApproval):
                return self._render_enrollment(patient, doctor.name, fields.signature_data_url, fields)
            if isinstance(fields, TrimitereApproval):
                return self._render_referral(patient, doctor, fields)
            raise ValueError(f"Unsupported document kind: {getattr(fields, 'kind', fields)!r}")
        except DocumentGenerationError:
            raise
        except Exception as e:
            logger.exception(f"PDF generation failed for {getattr(fields, 'kind', '?')} document")
            raise DocumentGenerationError(f"Failed to generate PDF: {e}") from e

    def generate_draft(
        self,
        signature_data_url: str,
        doctor_name: Optional[str] = None,
        patient: Optional[PatientData] = None,
    ) -> bytes:
        """Enrollment form as the patient signs it, before any administrative fields exist."""
        try:
            return self._render_enrollment(patient, doctor_name, signature_data_url, None)
        except Exception as e:
            logger.exception("Draft PDF generation failed")
            raise DocumentGenerationError(f"Failed to generate PDF: {e}") from e

    # -----------------------------
    # Templates
    # -----------------------------

    def _render_enrollment(
        self,
        patient: Optional[PatientData],
        doctor_name: Optional[str],
        signature_data_url: str,
        approved: Optional[InscriereApproval],
    ) -> bytes:
        signature = load_signature(signature_data_url)
        today = self.today()

        buf = io.BytesIO()
        pdf = canvas.Canvas(buf, pagesize=A4, invariant=1)
        pdf.setTitle("Cerere de transfer")
        w = _Writer(pdf)

        w.text("CERERE DE TRANSFER", size=16, bold=True, advance=LINE_HEIGHT + 5 * mm)

        if approved:
            number, registered_on = approved.registration_number, approved.registration_date
        else:
            number, registered_on = "1", today.strftime("%d/%m/%Y")
        w.text(f"Nr. inregistrare VIZAT*), {number} / {registered_on}", advance=FIELD_SPACING + 2 * mm)

        w.text(_labelled("Unitatea sanitara", approved and approved.clinic_name))
        w.text(_labelled("CUI", approved and approved.clinic_cui))
        w.text(_labelled("Sediu (localitate, str., nr.)", approved and approved.clinic_address))
        w.text(_labelled("Casa de Asigurari", approved and approved.insurance_house))
        w.text(_labelled("Nr. contract / conventie", approved and approved.contract_number),
               advance=FIELD_SPACING + 8 * mm)

        w.text(_labelled("Medic de familie", doctor_name), size=11, advance=FIELD_SPACING + 12 * mm)
        w.text("Domnule / Doamna Doctor,", size=11, advance=FIELD_SPACING + 8 * mm)

        w.paragraph(patient_declaration(patient) if patient else BLANK_DECLARATION)
        w.skip(FIELD_SPACING + 5 * mm)
        w.paragraph(TRANSFER_STATEMENT)
        w.skip(FIELD_SPACING + 15 * mm)

        w.ensure_room(SIGNATURE_HEIGHT + 10 * mm)
        pdf.setFont(FONT, 10)
        pdf.drawString(MARGIN, w.y, f"Data: {today.strftime('%d.%m.%Y')}")
        pdf.drawImage(
            signature,
            PAGE_WIDTH - MARGIN - SIGNATURE_WIDTH - 10 * mm,
            w.y - 4 * mm,
            width=SIGNATURE_WIDTH,
            height=SIGNATURE_HEIGHT,
            mask="auto",
            preserveAspectRatio=True,
        )

        pdf.showPage()
        pdf.save()
        return buf.getvalue()

    def _render_referral(self, patient: PatientData, doctor: DoctorData, fields: TrimitereApproval) -> bytes:
        buf = io.BytesIO()
        pdf = canvas.Canvas(buf, pagesize=A4, invariant=1)
        pdf.setTitle("Bilet de trimitere")
        w = _Writer(pdf)

        w.text("BILET DE TRIMITERE", size=16, bold=True, advance=LINE_HEIGHT + 5 * mm)
        w.text("catre ambulatoriul de specialitate", size=11, advance=FIELD_SPACING + 6 * mm)

        w.text(f"Pacient: {patient.name}", size=11)
        w.text(f"C.N.P.: {''.join(patient.cnp.split())}", size=11, advance=FIELD_SPACING + 6 * mm)

        w.text(f"Specialitatea: {fields.referral_specialty}", size=12, bold=True, advance=FIELD_SPACING + 6 * mm)

        w.text(f"Medic trimitator: {doctor.name}", size=11)
        if doctor.specialty:
            w.text(f"Specialitate medic: {doctor.specialty}", size=11)
        w.text(f"Data emiterii: {fields.issue_date}", size=11, advance=FIELD_SPACING + 10 * mm)

        w.ensure_room(45 * mm)
        self._draw_stamp(pdf, PAGE_WIDTH - MARGIN - 25 * mm, w.y - 20 * mm, doctor)
        pdf.setFont(FONT, 10)
        pdf.drawString(MARGIN, w.y - 20 * mm, "Semnatura si parafa medicului")

        pdf.showPage()
        pdf.save()
        return buf.getvalue()

    def _draw_stamp(self, pdf: canvas.Canvas, cx: float, cy: float, doctor: DoctorData) -> None:
        pdf.saveState()
        pdf.setStrokeColorRGB(0.1, 0.2, 0.6)
        pdf.setFillColorRGB(0.1, 0.2, 0.6)
        pdf.setLineWidth(1.5)
        pdf.circle(cx, cy, 20 * mm, stroke=1, fill=0)
        pdf.setLineWidth(0.7)
        pdf.circle(cx, cy, 17 * mm, stroke=1, fill=0)
        pdf.setFont(FONT_BOLD, 8)
        pdf.drawCentredString(cx, cy + 6 * mm, "MEDIC DE FAMILIE")
        pdf.setFont(FONT, 8)
        for offset, line in enumerate(simpleSplit(replace_diacritics(doctor.name), FONT, 8, 30 * mm)[:2]):
            pdf.drawCentredString(cx, cy - offset * 4 * mm, line)
        pdf.setFont(FONT, 7)
        pdf.drawCentredString(cx, cy - 10 * mm, "L.S.")
        pdf.restoreState()
