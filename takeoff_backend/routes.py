"""
HTTP routes for the takeoff projects API.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from takeoff_backend.auth import AuthService, Identity, require_identity
from takeoff_backend.config import Settings
from takeoff_backend.dependencies import (
    get_auth_service,
    get_settings_from_app,
    get_workflow,
)
from takeoff_backend.errors import PayloadTooLargeError, ValidationError
from takeoff_backend.project_data import parse_project_data
from takeoff_backend.schemas import (
    AuthResponse,
    CredentialsPayload,
    HealthResponse,
    LoginPayload,
    MessageResponse,
    PdfResponse,
    PdfUpdatePayload,
    ProjectResponse,
    ProjectUpdatePayload,
    UserResponse,
)
from takeoff_backend.workflow import FilePayload, ProjectWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()

PDF_CONTENT_TYPE = "application/pdf"


def _is_pdf(filename: str, content_type: Optional[str]) -> bool:
    return filename.lower().endswith(".pdf") or content_type == PDF_CONTENT_TYPE


async def _read_uploads(
    files: Optional[list[UploadFile]],
    levels: Optional[list[str]],
    limit: int,
) -> list[FilePayload]:
    payloads: list[FilePayload] = []
    total = 0
    for index, upload in enumerate(files or []):
        filename = upload.filename or f"drawing-{index + 1}.pdf"
        if not _is_pdf(filename, upload.content_type):
            raise ValidationError(f"{filename} is not a PDF file")
        if upload.size is not None and total + upload.size > limit:
            raise PayloadTooLargeError("Uploaded files exceed the size limit")
        data = await upload.read()
        total += len(data)
        if total > limit:
            raise PayloadTooLargeError("Uploaded files exceed the size limit")
        if not data:
            raise ValidationError(f"{filename} is empty")
        level = levels[index].strip() if levels and index < len(levels) else ""
        payloads.append(
            FilePayload(
                filename=filename,
                content_type=upload.content_type or PDF_CONTENT_TYPE,
                data=data,
                level=level,
            )
        )
    return payloads


@router.get("/healthz", response_model=HealthResponse)
def healthz():
    return HealthResponse(status="ok")


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    payload: CredentialsPayload,
    auth: AuthService = Depends(get_auth_service),
):
    token, user = auth.register(payload.email, payload.password)
    return AuthResponse(token=token, user=UserResponse(**user.as_dict()))


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: LoginPayload,
    auth: AuthService = Depends(get_auth_service),
):
    token, user = auth.login(payload.email, payload.password)
    return AuthResponse(token=token, user=UserResponse(**user.as_dict()))


@router.get("/auth/me", response_model=UserResponse)
def me(identity: Identity = Depends(require_identity)):
    return UserResponse(id=identity.user_id, email=identity.email)


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
):
    return [project.as_dict() for project in workflow.list_projects(identity.user_id)]


@router.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    name: str = Form(...),
    data: Optional[str] = Form(None),
    template_project_id: Optional[str] = Form(None, alias="templateProjectId"),
    levels: Optional[list[str]] = Form(None),
    pdfs: Optional[list[UploadFile]] = File(None),
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
    settings: Settings = Depends(get_settings_from_app),
):
    """
    Create a project from a multipart form: ``name``, optional ``data`` (JSON
    string), ``pdfs`` files and matching ``levels``.
    """
    project_data = parse_project_data(data)
    payloads = await _read_uploads(pdfs, levels, settings.max_upload_bytes)
    project = await run_in_threadpool(
        workflow.create_project,
        identity.user_id,
        name,
        project_data,
        payloads,
        template_project_id or None,
    )
    return project.as_dict()


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
):
    return workflow.get_project(project_id, identity.user_id).as_dict()


@router.put("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    payload: ProjectUpdatePayload,
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
):
    project = workflow.update_project(
        project_id, identity.user_id, name=payload.name, data=payload.data
    )
    return project.as_dict()


@router.delete("/projects/{project_id}", response_model=MessageResponse)
def delete_project(
    project_id: str,
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
):
    workflow.delete_project(project_id, identity.user_id)
    return MessageResponse(message="Project deleted successfully")


@router.post("/projects/{project_id}/pdfs", response_model=ProjectResponse, status_code=201)
async def add_pdfs(
    project_id: str,
    pdfs: list[UploadFile] = File(...),
    levels: Optional[list[str]] = Form(None),
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
    settings: Settings = Depends(get_settings_from_app),
):
    payloads = await _read_uploads(pdfs, levels, settings.max_upload_bytes)
    project = await run_in_threadpool(
        workflow.add_files, project_id, identity.user_id, payloads
    )
    return project.as_dict()


@router.get("/pdfs/{pdf_id}/data")
def get_pdf_data(
    pdf_id: str,
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
):
    pdf, content = workflow.read_pdf(pdf_id, identity.user_id)
    return Response(
        content=content,
        media_type=PDF_CONTENT_TYPE,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(pdf.name)}"},
    )


@router.patch("/pdfs/{pdf_id}", response_model=PdfResponse)
def update_pdf(
    pdf_id: str,
    payload: PdfUpdatePayload,
    identity: Identity = Depends(require_identity),
    workflow: ProjectWorkflow = Depends(get_workflow),
):
    return workflow.update_pdf_level(pdf_id, identity.user_id, payload.level).as_dict()
