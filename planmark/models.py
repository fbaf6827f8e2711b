# models.py: projects and per-page annotation blobs

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .db import Base, SessionLocal

STATUS_DRAFT, STATUS_SAVED = "draft", "saved"


def _now():
    return datetime.now(timezone.utc)


def _iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    # sqlite hands timestamps back without tzinfo; they are stored as UTC
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


class Project(Base):
    __tablename__ = "projects"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), index=True, nullable=False)
    name = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_DRAFT)
    pdf_url = Column(Text, nullable=False)
    pdf_page_count = Column(Integer, nullable=False, default=1)
    current_page = Column(Integer, nullable=False, default=1)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_now)

    annotations = relationship("PageAnnotation", back_populates="project", cascade="all, delete-orphan")

    # fields a PATCH may change
    EDITABLE = {"name", "status", "current_page", "pdf_page_count"}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "status": self.status,
            "pdf_url": self.pdf_url,
            "pdf_page_count": self.pdf_page_count,
            "current_page": self.current_page,
            "last_updated": _iso(self.last_updated),
        }


class PageAnnotation(Base):
    __tablename__ = "annotations"
    __table_args__ = (UniqueConstraint("project_id", "page_number", name="uq_annotation_page"),)
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False)
    page_number = Column(Integer, nullable=False)
    data = Column(JSON, nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_now)

    project = relationship("Project", back_populates="annotations")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "page_number": self.page_number,
            "data": self.data,
            "last_updated": _iso(self.last_updated),
        }


# ───────── Repository ─────────
def get_project(project_id: str) -> Optional[Project]:
    return SessionLocal().get(Project, project_id)


def list_projects(user_id: str) -> List[Project]:
    db = SessionLocal()
    return db.query(Project).filter(Project.user_id == user_id).order_by(Project.last_updated.desc()).all()


def create_project(user_id: str, name: str, pdf_url: str, pdf_page_count: int = 1,
                   project_id: Optional[str] = None) -> Project:
    db = SessionLocal()
    project = Project(id=project_id or str(uuid.uuid4()), user_id=user_id, name=name,
                      pdf_url=pdf_url, pdf_page_count=pdf_page_count)
    db.add(project)
    db.commit()
    return project


def update_project(project_id: str, **changes) -> Optional[Project]:
    """Apply editable fields and bump last_updated; an empty update only touches the timestamp."""
    db = SessionLocal()
    project = db.get(Project, project_id)
    if project is None:
        return None
    for key, value in changes.items():
        if key in Project.EDITABLE:
            setattr(project, key, value)
    project.last_updated = _now()
    db.commit()
    return project


def delete_project(project_id: str) -> bool:
    db = SessionLocal()
    db.query(PageAnnotation).filter(PageAnnotation.project_id == project_id).delete()
    deleted = db.query(Project).filter(Project.id == project_id).delete()
    db.commit()
    return bool(deleted)


def get_annotation(project_id: str, page_number: int) -> Optional[PageAnnotation]:
    db = SessionLocal()
    return db.query(PageAnnotation).filter_by(project_id=project_id, page_number=page_number).first()


def save_annotation(project_id: str, page_number: int, data) -> PageAnnotation:
    db = SessionLocal()
    row = db.query(PageAnnotation).filter_by(project_id=project_id, page_number=page_number).first()
    if row is None:
        row = PageAnnotation(project_id=project_id, page_number=page_number, data=data)
        db.add(row)
    else:
        row.data = data
        row.last_updated = _now()
    db.commit()
    return row
