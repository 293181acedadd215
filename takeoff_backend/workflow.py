"""
Project lifecycle operations spanning the relational store and blob storage.

The relational side is transactional; the blob store is not, so the
operations below order their side effects to keep PDF rows pointing at
existing objects:

- create uploads inside the open transaction and rolls back every row if any
  upload or insert fails. Blobs uploaded before the failure are left behind
  (orphans) and logged.
- delete commits the row removal first and only then deletes blobs, best
  effort. A failed blob delete is logged and never surfaces.
- add_files commits one PDF at a time, so a failure partway keeps the PDFs
  that were already attached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from takeoff_backend.db import (
    Database,
    PdfRecord,
    ProjectRecord,
    delete_owned_project,
    insert_pdf,
    insert_project,
    list_owned_projects,
    load_owned_pdf,
    load_owned_project,
    select_pdf_urls,
    to_pdf_record,
    to_project_record,
    update_owned_project,
)
from takeoff_backend.errors import NotFoundError, StorageError, ValidationError
from takeoff_backend.project_data import (
    data_from_template,
    default_project_data,
    normalize_project_data,
)
from takeoff_backend.storage import StorageClient

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


@dataclass(frozen=True)
class FilePayload:
    filename: str
    content_type: str
    data: bytes
    level: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


def _clean_name(name: Optional[str], what: str = "Project name") -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{what} is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"{what} must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


def _log_orphans(urls: Iterable[str], reason: str) -> None:
    for url in urls:
        logger.warning(f"Orphaned blob after {reason}: {url}")


class ProjectWorkflow:
    def __init__(self, db: Database, storage: StorageClient):
        self.db = db
        self.storage = storage

    def create_project(
        self,
        owner_id: str,
        name: str,
        data: Optional[dict] = None,
        files: Sequence[FilePayload] = (),
        template_project_id: Optional[str] = None,
    ) -> ProjectRecord:
        """
        Insert a project and its PDFs as one transaction.

        Files are uploaded one at a time while the transaction is open; if
        anything fails no project row survives.
        """
        name = _clean_name(name)
        if data is not None and template_project_id:
            raise ValidationError("Provide either data or templateProjectId, not both")
        if data is not None:
            data = normalize_project_data(data)

        uploaded: list[str] = []
        try:
            with self.db.transaction() as session:
                if template_project_id:
                    template = load_owned_project(session, template_project_id, owner_id)
                    if template is None:
                        raise NotFoundError("Template project not found")
                    initial = data_from_template(template.data or {})
                else:
                    initial = data if data is not None else default_project_data()

                project = insert_project(session, owner_id, name, initial)
                pdf_rows = []
                for payload in files:
                    url = self.storage.put(payload.data, payload.content_type, payload.filename)
                    uploaded.append(url)
                    pdf_rows.append(
                        insert_pdf(
                            session,
                            project.id,
                            name=payload.filename,
                            file_url=url,
                            file_size=payload.size,
                            level=payload.level,
                        )
                    )
                record = to_project_record(project, pdf_rows)
        except (NotFoundError, ValidationError):
            raise
        except (StorageError, SQLAlchemyError) as exc:
            _log_orphans(uploaded, "create rollback")
            logger.error(f"Create project failed for user {owner_id}: {exc}")
            raise StorageError("Failed to create project") from exc
        except Exception:
            _log_orphans(uploaded, "create rollback")
            raise

        logger.info(
            f"Created project {record.id} for user {owner_id} with {len(record.pdfs)} pdf(s)"
        )
        return record

    def update_project(
        self,
        project_id: str,
        owner_id: str,
        *,
        name: Optional[str] = None,
        data: Optional[dict] = None,
    ) -> ProjectRecord:
        if name is None and data is None:
            raise ValidationError("Nothing to update: provide name and/or data")
        if name is not None:
            name = _clean_name(name)
        if data is not None:
            data = normalize_project_data(data)

        try:
            with self.db.transaction() as session:
                if not update_owned_project(session, project_id, owner_id, name=name, data=data):
                    raise NotFoundError("Project not found")
                row = load_owned_project(session, project_id, owner_id)
                return to_project_record(row)
        except SQLAlchemyError as exc:
            logger.error(f"Update of project {project_id} failed: {exc}")
            raise StorageError("Failed to update project") from exc

    def delete_project(self, project_id: str, owner_id: str) -> None:
        """
        Remove the project rows, then delete its blobs best effort.

        The rows are gone once this returns, even if some blobs could not be
        deleted.
        """
        try:
            with self.db.transaction() as session:
                urls = select_pdf_urls(session, project_id)
                if not delete_owned_project(session, project_id, owner_id):
                    raise NotFoundError("Project not found")
        except SQLAlchemyError as exc:
            logger.error(f"Delete of project {project_id} failed: {exc}")
            raise StorageError("Failed to delete project") from exc

        for url in urls:
            try:
                self.storage.delete(url)
            except Exception as exc:
                logger.warning(f"Could not delete blob {url} of project {project_id}: {exc}")
        logger.info(f"Deleted project {project_id} ({len(urls)} blob(s))")

    def add_files(
        self, project_id: str, owner_id: str, files: Sequence[FilePayload]
    ) -> ProjectRecord:
        if not files:
            raise ValidationError("At least one PDF file is required")
        with self.db.Session() as session:
            if load_owned_project(session, project_id, owner_id) is None:
                raise NotFoundError("Project not found")

        for payload in files:
            url = None
            try:
                url = self.storage.put(payload.data, payload.content_type, payload.filename)
                with self.db.transaction() as session:
                    insert_pdf(
                        session,
                        project_id,
                        name=payload.filename,
                        file_url=url,
                        file_size=payload.size,
                        level=payload.level,
                    )
            except (StorageError, SQLAlchemyError) as exc:
                if url:
                    _log_orphans([url], "failed pdf insert")
                logger.error(f"Adding {payload.filename} to project {project_id} failed: {exc}")
                raise StorageError("Failed to add files to project") from exc
        return self.get_project(project_id, owner_id)

    def list_projects(self, owner_id: str) -> list[ProjectRecord]:
        with self.db.Session() as session:
            return [to_project_record(row) for row in list_owned_projects(session, owner_id)]

    def get_project(self, project_id: str, owner_id: str) -> ProjectRecord:
        with self.db.Session() as session:
            row = load_owned_project(session, project_id, owner_id)
            if row is None:
                raise NotFoundError("Project not found")
            return to_project_record(row)

    def get_pdf(self, pdf_id: str, owner_id: str) -> PdfRecord:
        with self.db.Session() as session:
            row = load_owned_pdf(session, pdf_id, owner_id)
            if row is None:
                raise NotFoundError("PDF not found")
            return to_pdf_record(row)

    def read_pdf(self, pdf_id: str, owner_id: str) -> tuple[PdfRecord, bytes]:
        pdf = self.get_pdf(pdf_id, owner_id)
        try:
            content = self.storage.get_bytes(pdf.file_url)
        except StorageError as exc:
            logger.error(f"Reading blob of pdf {pdf_id} failed: {exc}")
            raise StorageError("Failed to read PDF") from exc
        return pdf, content

    def update_pdf_level(self, pdf_id: str, owner_id: str, level: str) -> PdfRecord:
        level = (level or "").strip()
        if len(level) > MAX_NAME_LENGTH:
            raise ValidationError(f"Level must be at most {MAX_NAME_LENGTH} characters")
        with self.db.transaction() as session:
            row = load_owned_pdf(session, pdf_id, owner_id)
            if row is None:
                raise NotFoundError("PDF not found")
            row.level = level
            session.flush()
            return to_pdf_record(row)
