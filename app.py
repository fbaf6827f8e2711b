# app.py: PlanMark (Flask + PyMuPDF)
# Floor-plan PDF annotation server: uploads, cached page images, per-page annotation layers, exports.
#
# Run:  flask --app app run          (development)
#       gunicorn app:app             (production)

import io
import logging
import traceback
import uuid
from pathlib import Path

from flask import Flask, request, jsonify, send_file
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from planmark import config, models
from planmark.conversion import ConversionError, ensure_page_images
from planmark.db import SessionLocal, init_db
from planmark.export import export_page_png, export_project_pdf
from planmark.shapes import InvalidShapeError, layers_from_data, layers_to_data
from planmark.storage import Storage

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = Flask(__name__)
app.config["SECRET_KEY"] = config.SECRET_KEY
app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_MB * 1024 * 1024

ALLOWED_EXT = {".pdf"}
UPLOADS_PREFIX = "/uploads/"
MIMETYPES = {".pdf": "application/pdf", ".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg"}

init_db()

# ───────── Helpers ─────────
def _allowed(filename: str) -> bool:
    return Path(filename).suffix.lower() in ALLOWED_EXT

def _upload_url(key: str) -> str:
    return UPLOADS_PREFIX + key

def _storage_key(url: str) -> str:
    return url[len(UPLOADS_PREFIX):] if url.startswith(UPLOADS_PREFIX) else url

def _not_found(what: str):
    return jsonify({"error": f"{what} not found"}), 404

def _page_from_ref(ref: str) -> int:
    # "<page>" or "<page>:<zoom>"
    return int(ref.split(":", 1)[0])

def _page_layers(project_id: str, page_number: int):
    row = models.get_annotation(project_id, page_number)
    return layers_from_data(row.data if row else None)

@app.teardown_appcontext
def remove_session(exception=None):
    SessionLocal.remove()

@app.after_request
def add_no_cache(resp):
    if request.path.startswith("/api/"):
        resp.headers["Cache-Control"] = "no-store, max-age=0"
    return resp

@app.errorhandler(413)
def too_large(e):
    return jsonify({"error": f"File too large (max {config.MAX_UPLOAD_MB} MB)"}), 413

@app.errorhandler(ConversionError)
def conversion_failed(e):
    app.logger.error("Conversion failed: %s\n%s", e, traceback.format_exc())
    return jsonify({"error": str(e)}), 500

@app.errorhandler(Exception)
def unhandled(e):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    app.logger.error("Request failed: %s\n%s", e, traceback.format_exc())
    return jsonify({"error": "Internal server error"}), 500

# ───────── Routes ─────────
@app.get("/health")
def health():
    return jsonify({"ok": True})

@app.get("/uploads/<path:key>")
def uploaded_file(key):
    try:
        data = Storage.get(key)
    except (FileNotFoundError, ValueError):
        return _not_found("File")
    mimetype = MIMETYPES.get(Path(key).suffix.lower(), "application/octet-stream")
    return send_file(io.BytesIO(data), mimetype=mimetype)

# projects
@app.get("/api/projects")
def list_projects():
    user_id = request.args.get("user_id")
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400
    return jsonify([p.to_dict() for p in models.list_projects(user_id)])

@app.get("/api/projects/<project_id>")
def get_project(project_id):
    project = models.get_project(project_id)
    if project is None:
        return _not_found("Project")
    return jsonify(project.to_dict())

@app.post("/api/projects")
def create_project():
    name = (request.form.get("name") or "").strip()
    user_id = (request.form.get("user_id") or "").strip()
    f = request.files.get("pdf")
    if not name or not user_id or not f or not f.filename:
        return jsonify({"error": "name, user_id and a PDF file are required"}), 400
    if not _allowed(f.filename) and f.mimetype != "application/pdf":
        return jsonify({"error": "Only PDF files are allowed"}), 400

    project_id = str(uuid.uuid4())
    filename = secure_filename(f.filename) or "document.pdf"
    pdf_bytes = f.read()
    pdf_key = Storage.save(pdf_bytes, f"{project_id}/{filename}", content_type="application/pdf")

    page_count = 1
    try:
        page_count = len(ensure_page_images(project_id, pdf_key)) or 1
    except ConversionError as e:
        app.logger.error("PDF conversion failed, defaulting to 1 page: %s", e)

    project = models.create_project(user_id=user_id, name=name, pdf_url=_upload_url(pdf_key),
                                    pdf_page_count=page_count, project_id=project_id)
    app.logger.info("Created project %s (%d page(s))", project.id, page_count)
    return jsonify(project.to_dict()), 201

@app.patch("/api/projects/<project_id>")
def update_project(project_id):
    updates = request.get_json(silent=True) or {}
    if not isinstance(updates, dict):
        return jsonify({"error": "Expected a JSON object"}), 400
    try:
        for key in ("current_page", "pdf_page_count"):
            if key in updates:
                updates[key] = int(updates[key])
    except (TypeError, ValueError):
        return jsonify({"error": "Page numbers must be integers"}), 400
    if "name" in updates:
        if not isinstance(updates["name"], str) or not updates["name"].strip():
            return jsonify({"error": "name must be a non-empty string"}), 400
        updates["name"] = updates["name"].strip()
    if "status" in updates and updates["status"] not in (models.STATUS_DRAFT, models.STATUS_SAVED):
        return jsonify({"error": "status must be 'draft' or 'saved'"}), 400
    project = models.update_project(project_id, **updates)
    if project is None:
        return _not_found("Project")
    return jsonify(project.to_dict())

@app.post("/api/projects/<project_id>/save")
def save_project(project_id):
    project = models.update_project(project_id, status=models.STATUS_SAVED)
    if project is None:
        return _not_found("Project")
    return jsonify(project.to_dict())

@app.delete("/api/projects/<project_id>")
def delete_project(project_id):
    removed = Storage.delete_prefix(project_id)
    models.delete_project(project_id)
    app.logger.info("Deleted project %s (%d file(s))", project_id, removed)
    return jsonify({"ok": True})

# annotations
@app.get("/api/annotations/<project_id>/<int:page_number>")
def get_annotations(project_id, page_number):
    row = models.get_annotation(project_id, page_number)
    if row is None:
        return jsonify({"data": None})
    return jsonify(row.to_dict())

@app.put("/api/annotations/<project_id>/<int:page_number>")
def put_annotations(project_id, page_number):
    if models.get_project(project_id) is None:
        return _not_found("Project")
    body = request.get_json(silent=True) or {}
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, list):
        return jsonify({"error": "data must be a list of layers"}), 400
    try:
        layers = layers_from_data(data)
    except InvalidShapeError as e:
        return jsonify({"error": str(e)}), 400
    row = models.save_annotation(project_id, page_number, layers_to_data(layers))
    models.update_project(project_id)
    return jsonify(row.to_dict())

# pages
@app.get("/api/projects/<project_id>/pages")
def list_pages(project_id):
    project = models.get_project(project_id)
    if project is None:
        return _not_found("Project")
    if not project.pdf_url:
        return jsonify({"pages": [], "total_pages": 0})
    try:
        images = ensure_page_images(project_id, _storage_key(project.pdf_url))
    except FileNotFoundError:
        return _not_found("PDF file")
    pages = [{"page_number": p.page_number, "image_url": _upload_url(p.key)} for p in images]
    return jsonify({"pages": pages, "total_pages": len(pages)})

@app.get("/api/projects/<project_id>/pages/<page_ref>")
def get_page(project_id, page_ref):
    try:
        page_number = _page_from_ref(page_ref)
    except ValueError:
        return jsonify({"error": "bad page"}), 400
    project = models.get_project(project_id)
    if project is None:
        return _not_found("Project")
    if not project.pdf_url:
        return jsonify({"error": "No PDF associated with this project"}), 404
    try:
        images = ensure_page_images(project_id, _storage_key(project.pdf_url))
    except FileNotFoundError:
        return _not_found("PDF file")
    if not 1 <= page_number <= len(images):
        return _not_found("Page")
    return jsonify({
        "image_url": _upload_url(images[page_number - 1].key),
        "page_number": page_number,
        "total_pages": len(images),
    })

# exports
@app.get("/api/projects/<project_id>/pages/<int:page_number>/export.png")
def export_png(project_id, page_number):
    project = models.get_project(project_id)
    if project is None:
        return _not_found("Project")
    try:
        images = ensure_page_images(project_id, _storage_key(project.pdf_url))
    except FileNotFoundError:
        return _not_found("PDF file")
    if not 1 <= page_number <= len(images):
        return _not_found("Page")
    png = export_page_png(Storage.get(images[page_number - 1].key), _page_layers(project_id, page_number))
    name = secure_filename(project.name) or "annotation"
    return send_file(io.BytesIO(png), mimetype="image/png",
                     as_attachment=True, download_name=f"{name}-page-{page_number}.png")

@app.get("/api/projects/<project_id>/export.pdf")
def export_pdf(project_id):
    project = models.get_project(project_id)
    if project is None:
        return _not_found("Project")
    try:
        images = ensure_page_images(project_id, _storage_key(project.pdf_url))
    except FileNotFoundError:
        return _not_found("PDF file")
    if not images:
        return jsonify({"error": "Nothing to export"}), 400
    pages = ((Storage.get(p.key), _page_layers(project_id, p.page_number)) for p in images)
    data = export_project_pdf(pages)
    name = secure_filename(project.name) or "annotation"
    return send_file(io.BytesIO(data), mimetype="application/pdf",
                     as_attachment=True, download_name=f"{name}-all-pages.pdf")

if __name__ == "__main__":
  app.run(host="0.0.0.0", port=config.PORT, debug=False)
