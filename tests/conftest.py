"""
Shared fixtures: application factory on in-memory SQLite, a temporary
blob folder, and small PDFs / PNG signatures generated on the fly.
"""

import base64
import io
import os
import sys
from pathlib import Path

import pytest

# Settings() is built at import time and needs a secret
os.environ.setdefault("SECRET_KEY", "test-secret")

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from PIL import Image
from reportlab.pdfgen import canvas

from signflow import create_app, db


def make_pdf(pages: int = 1, size=(612, 792)) -> bytes:
    """Blank PDF with `pages` pages of `size` points."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=size, invariant=1)
    for _ in range(pages):
        c.showPage()
    c.save()
    return buffer.getvalue()


def make_signature_data_url(size=(60, 20)) -> str:
    """A canvas-style PNG data URL with one horizontal stroke."""
    image = Image.new("RGBA", size, (255, 255, 255, 0))
    for x in range(size[0]):
        image.putpixel((x, size[1] // 2), (0, 0, 0, 255))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def signature_value():
    return make_signature_data_url()


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "BLOB_FOLDER": str(tmp_path / "blobs"),
        "SMTP_ENABLED": False,
        "BASE_URL": "http://testserver",
        "FRONTEND_URL": "http://frontend",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
