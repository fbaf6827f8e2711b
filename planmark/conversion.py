"""
PDF page → PNG conversion with a per-project cache.

Rendered pages live in storage under ``<project_id>/pages/page-<n>.png``.
``ensure_page_images`` serves those when present and otherwise converts the
project's PDF, making sure concurrent requests for the same project share a
single conversion.
"""
import logging
import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Dict, List

import fitz  # PyMuPDF

from . import config
from .storage import Storage

log = logging.getLogger(__name__)

PAGE_FILE_RE = re.compile(r"page-(\d+)\.png$")


class ConversionError(Exception):
    pass


@dataclass
class PageImage:
    page_number: int
    key: str


@dataclass
class ConversionResult:
    page_count: int
    pages: List[PageImage] = field(default_factory=list)


def pages_prefix(project_id: str) -> str:
    return f"{project_id}/pages"


def page_number_from_filename(name: str) -> int:
    m = PAGE_FILE_RE.search(name)
    return int(m.group(1)) if m else 0


def sort_page_files(names: List[str]) -> List[str]:
    files = [n for n in names if n.startswith("page-") and n.endswith(".png")]
    return sorted(files, key=page_number_from_filename)


def count_pages(pdf_bytes: bytes) -> int:
    try:
        with fitz.open(stream=pdf_bytes, filetype="pdf") as pdf:
            return len(pdf)
    except Exception as e:
        raise ConversionError(f"Failed to read PDF: {e}") from e


def convert_pdf_to_images(pdf_bytes: bytes, project_id: str, dpi: int = None) -> ConversionResult:
    dpi = dpi or config.RENDER_DPI
    prefix = pages_prefix(project_id)
    try:
        pdf = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise ConversionError(f"Failed to convert PDF to images: {e}") from e

    pages = []
    try:
        with pdf:
            for index, page in enumerate(pdf, start=1):
                pix = page.get_pixmap(dpi=dpi, alpha=False)
                key = Storage.save(pix.tobytes("png"), f"{prefix}/page-{index}.png", content_type="image/png")
                pages.append(PageImage(index, key))
    except Exception as e:
        # a truncated page set must never be served as the cache
        Storage.delete_prefix(prefix)
        raise ConversionError(f"Failed to convert PDF to images: {e}") from e
    log.info("Converted %d page(s) for project %s at %d dpi", len(pages), project_id, dpi)
    return ConversionResult(len(pages), pages)


def cached_page_images(project_id: str) -> List[PageImage]:
    prefix = pages_prefix(project_id)
    files = sort_page_files(Storage.list(prefix))
    return [PageImage(i, f"{prefix}/{name}") for i, name in enumerate(files, start=1)]


_locks: Dict[str, Future] = {}
_locks_guard = threading.Lock()


def in_progress(project_id: str) -> bool:
    with _locks_guard:
        return project_id in _locks


def ensure_page_images(project_id: str, pdf_key: str) -> List[PageImage]:
    """Cached page images for a project, converting its PDF on first use.

    The cache is only read while no conversion is running for the project;
    callers arriving mid-conversion wait for it instead of seeing the pages
    written so far.
    """
    with _locks_guard:
        future = _locks.get(project_id)
        owner = future is None
        if owner:
            cached = cached_page_images(project_id)
            if cached:
                return cached
            future = Future()
            _locks[project_id] = future

    if owner:
        try:
            if not Storage.exists(pdf_key):
                raise FileNotFoundError("PDF file not found")
            result = convert_pdf_to_images(Storage.get(pdf_key), project_id)
            future.set_result(result)
        except Exception as e:
            future.set_exception(e)
        finally:
            with _locks_guard:
                _locks.pop(project_id, None)

    # re-raises the owner's error for every waiter
    future.result()
    return cached_page_images(project_id)
