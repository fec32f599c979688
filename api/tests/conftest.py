import os
from io import BytesIO
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from fieldsign.main import app  # noqa: E402
from fieldsign import db as db_module  # noqa: E402
from fieldsign import finalize as finalize_module  # noqa: E402
from fieldsign import storage as storage_module  # noqa: E402
from fieldsign.db import get_session  # noqa: E402
from fieldsign.models import Field as FieldModel  # noqa: E402
from fieldsign.storage import ObjectNotFound  # noqa: E402

SIMPLE_SIGNATURE_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/Pf8icQAAAABJRU5ErkJggg=="
SIMPLE_SIGNATURE_URI = f"data:image/png;base64,{SIMPLE_SIGNATURE_B64}"


def make_field(id, type="text", value=None, **kwargs):
    """Unsaved field row with a usable default placement."""
    defaults = dict(document_id=1, page_number=1, x=10.0, y=10.0, width=120.0, height=24.0)
    defaults.update(kwargs)
    return FieldModel(id=id, type=type, value=value, **defaults)


def make_pdf(pages=1, size=(595, 842)) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=size)
    for n in range(pages):
        c.setFont("Helvetica", 12)
        c.drawString(72, size[1] - 72, f"Page {n + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


class RecordingSurface:
    """PaintSurface that records calls and measures text with real font metrics."""

    def __init__(self):
        self.calls = []

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))

    def draw_rect(self, x, y, width, height, **kwargs):
        self._record("rect", x, y, width, height, **kwargs)

    def draw_line(self, x1, y1, x2, y2, **kwargs):
        self._record("line", x1, y1, x2, y2, **kwargs)

    def draw_circle(self, x, y, radius, **kwargs):
        self._record("circle", x, y, radius, **kwargs)

    def draw_text(self, text, x, y, **kwargs):
        self._record("text", text, x, y, **kwargs)

    def draw_image(self, data, x, y, width, height):
        self._record("image", x, y, width, height)

    def image_size(self, data):
        return ImageReader(BytesIO(data)).getSize()

    def measure_text_width(self, text, font, size):
        return pdfmetrics.stringWidth(text, font, size)

    def font_ascent(self, font, size):
        return pdfmetrics.getAscent(font, size)

    def named(self, name):
        return [c for c in self.calls if c[0] == name]

    def texts(self):
        return [c[1][0] for c in self.named("text")]


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def sample_pdf():
    return make_pdf(pages=2)


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def mock_storage(monkeypatch) -> Dict[str, bytes]:
    store: Dict[str, bytes] = {}

    def fake_put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
        store[key] = bytes(data)

    def fake_get_bytes(key: str) -> bytes:
        if key not in store:
            raise ObjectNotFound(f"object {key} does not exist", key=key)
        return store[key]

    def fake_delete_object(key: str):
        store.pop(key, None)

    from fieldsign.routers import documents, signing  # noqa: E402

    for target in (storage_module, finalize_module, documents, signing):
        if hasattr(target, "put_bytes"):
            monkeypatch.setattr(target, "put_bytes", fake_put_bytes)
        if hasattr(target, "get_bytes"):
            monkeypatch.setattr(target, "get_bytes", fake_get_bytes)
        if hasattr(target, "delete_object"):
            monkeypatch.setattr(target, "delete_object", fake_delete_object)
    return store


@pytest.fixture
def client(test_engine, setup_db, mock_storage):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
