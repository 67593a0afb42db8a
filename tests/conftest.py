# tests/conftest.py

import base64
import io

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from PIL import Image, ImageDraw

from app.core.config import Settings
from app.main import create_app


@pytest.fixture
def settings():
    return Settings(_env_file=None, MONGODB_DB="portal_test", APP_ENV="test")


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def client(settings, mongo_client):
    app = create_app(settings=settings, mongo_client=mongo_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signature_data_url():
    img = Image.new("RGBA", (300, 100), (255, 255, 255, 0))
    ImageDraw.Draw(img).line([(20, 70), (120, 30), (200, 75), (280, 25)], fill=(0, 0, 0, 255), width=4)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def inscriere_payload(signature_data_url):
    return {
        "type": "inscriere",
        "patientName": "GEORGESCU ANDREI",
        "patientCnp": "1901213254491",
        "patientBirthDate": "13.12.1990",
        "patientCitizenship": "română",
        "patientAddress": {
            "street": "Str. Lalelelor",
            "number": "12",
            "block": "A3",
            "entrance": "",
            "apartment": "14",
            "sector": "Sector 3",
        },
        "idType": "CI",
        "idSeries": "RT",
        "idNumber": "123456",
        "idIssuedBy": "SPCEP S3",
        "idIssueDate": "01.02.2020",
        "doctorName": "Dr. Popescu",
        "doctorSpecialty": "Medicină de familie",
        "pdfData": "AA==",
        "signatureDataUrl": signature_data_url,
    }


@pytest.fixture
def trimitere_payload():
    return {
        "type": "trimitere",
        "patientName": "GEORGESCU ANDREI",
        "patientCnp": "1901213254491",
        "doctorName": "Dr. Popescu",
        "referralSpecialty": "Cardiologie",
    }
