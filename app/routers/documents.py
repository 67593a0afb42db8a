# app/routers/documents.py

import asyncio
import base64

from fastapi import APIRouter, Depends

from app.models.request import DraftPdfRequest
from app.routers.deps import get_document_generator
from app.services.pdf_generator import DocumentGenerator, executor, validate_signature
from app.utils.errors import ValidationError
from app.utils.responses import format_response

router = APIRouter(prefix="/api", tags=["documents"])


@router.post("/generate-pdf", summary="Render an unapproved enrollment draft")
async def generate_draft_pdf(
    body: DraftPdfRequest,
    generator: DocumentGenerator = Depends(get_document_generator),
):
    if not body.signature_data_url:
        raise ValidationError("Missing required field: signatureDataUrl")
    validate_signature(body.signature_data_url)

    loop = asyncio.get_running_loop()
    pdf_bytes = await loop.run_in_executor(executor, lambda: generator.generate_draft(
        body.signature_data_url,
        doctor_name=body.doctor_name,
        patient=body.user_data,
    ))
    return format_response(
        success=True,
        data={"pdfData": base64.b64encode(pdf_bytes).decode("ascii")},
    )
