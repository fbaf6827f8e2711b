# Standard library imports
import io
import os
import shutil
import tempfile

# settings are read from the environment when planmark is first imported
_WORK_DIR = tempfile.mkdtemp(prefix="planmark-tests-")
os.environ["WORK_DIR"] = _WORK_DIR
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_WORK_DIR, 'test.db')}"
os.environ["USE_S3"] = "false"
os.environ["RENDER_DPI"] = "72"

# Third-party imports
import fitz
import pytest

# PlanMark imports
from planmark import config
from planmark.db import Base, SessionLocal, engine, init_db


def make_pdf(pages=2, width=200, height=100):
    """Small in-memory PDF with a label on every page"""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((20, 50), f"Floor {i + 1}", fontsize=14)
    out = io.BytesIO()
    doc.save(out)
    doc.close()
    return out.getvalue()


def make_png(width=40, height=30):
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.clear_with(255)
    return pix.tobytes("png")


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def clean_storage():
    """Empty the work directory (except the database) around a test"""
    def wipe():
        for entry in config.WORK_DIR.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
    wipe()
    yield config.WORK_DIR
    wipe()


@pytest.fixture
def clean_db():
    SessionLocal.remove()
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    SessionLocal.remove()


@pytest.fixture
def client(clean_db, clean_storage):
    from app import app
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client


def pytest_sessionfinish(session, exitstatus):
    SessionLocal.remove()
    engine.dispose()
    shutil.rmtree(_WORK_DIR, ignore_errors=True)
