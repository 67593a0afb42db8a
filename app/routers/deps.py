# app/routers/deps.py

from fastapi import Depends, Request

from app.core.config import Settings
from app.db.requests_store import RequestStore
from app.services.lifecycle import RequestLifecycle
from app.services.pdf_generator import DocumentGenerator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RequestStore:
    return request.app.state.store


def get_document_generator(request: Request) -> DocumentGenerator:
    return request.app.state.document_generator


def get_lifecycle(
    store: RequestStore = Depends(get_store),
    generator: DocumentGenerator = Depends(get_document_generator),
    settings: Settings = Depends(get_settings),
) -> RequestLifecycle:
    return RequestLifecycle(store, generator, settings)
