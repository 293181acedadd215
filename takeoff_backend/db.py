"""
Relational store for users, projects and PDF metadata.

``Database`` owns the SQLAlchemy engine (and therefore the connection pool)
and hands out scoped transactions. The row helpers below take an open
session so the workflow can compose several statements in one transaction.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    create_engine,
    delete,
    event,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from takeoff_backend.config import Settings
from takeoff_backend.errors import ValidationError

logger = logging.getLogger(__name__)

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    created_at: datetime

    def as_dict(self) -> dict:
        return {"id": self.id, "email": self.email}


@dataclass
class PdfRecord:
    id: str
    project_id: str
    name: str
    file_url: str
    file_size: int
    level: str
    created_at: datetime

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "fileUrl": self.file_url,
            "fileSize": self.file_size,
            "level": self.level,
            "createdAt": self.created_at,
        }


@dataclass
class ProjectRecord:
    id: str
    user_id: str
    name: str
    data: dict
    created_at: datetime
    updated_at: datetime
    pdfs: list[PdfRecord] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "data": self.data,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "pdfs": [pdf.as_dict() for pdf in self.pdfs],
        }


def normalize_database_url(url: str) -> str:
    """Pin bare Postgres URLs to the psycopg 3 driver."""
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    SQLAlchemy-backed store. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests and local runs).
    """

    def __init__(
        self,
        database_url: str,
        *,
        ssl_mode: Optional[str] = None,
        ssl_root_cert: Optional[str] = None,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: float = 30.0,
        connect_timeout: int = 10,
        statement_timeout_ms: int = 15000,
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for Database")
        url = normalize_database_url(database_url)
        if url.startswith("sqlite"):
            engine_kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
                # One shared connection, otherwise every checkout sees an empty db.
                engine_kwargs["poolclass"] = StaticPool
            self.engine = create_engine(url, **engine_kwargs)
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            connect_args: dict = {
                "sslmode": ssl_mode or "disable",
                "connect_timeout": connect_timeout,
            }
            if ssl_root_cert:
                connect_args["sslrootcert"] = ssl_root_cert
            if statement_timeout_ms:
                connect_args["options"] = f"-c statement_timeout={statement_timeout_ms}"
            self.engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
                pool_recycle=1800,
                connect_args=connect_args,
            )
        self.Session = sessionmaker(bind=self.engine, class_=Session, expire_on_commit=False)
        logger.info(f"Database engine ready ({self.engine.dialect.name})")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if settings.use_in_memory_backends or not settings.database_url:
            return cls(IN_MEMORY_DATABASE_URL)
        return cls(
            settings.database_url,
            ssl_mode=settings.effective_ssl_mode,
            ssl_root_cert=settings.database_ssl_root_cert,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            connect_timeout=settings.database_connect_timeout,
            statement_timeout_ms=settings.database_statement_timeout_ms,
        )

    def init_schema(self) -> None:
        """Create missing tables; safe to run repeatedly."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Check out one connection for the duration of a transaction.

        Commits on normal exit, rolls back on any exception, and always
        returns the connection to the pool.
        """
        with self.Session.begin() as session:
            yield session

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        try:
            with self.transaction() as session:
                existing = session.execute(
                    select(UserRow.id).where(UserRow.email == email)
                ).first()
                if existing:
                    raise ValidationError("User already exists")
                row = UserRow(
                    id=_new_id(),
                    email=email,
                    password_hash=password_hash,
                    created_at=_utcnow(),
                )
                session.add(row)
                session.flush()
                return to_user_record(row)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            raise ValidationError("User already exists")

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            return to_user_record(row) if row else None


def to_user_record(row: "UserRow") -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


def to_pdf_record(row: "PdfRow") -> PdfRecord:
    return PdfRecord(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        file_url=row.file_url,
        file_size=row.file_size,
        level=row.level or "",
        created_at=row.created_at,
    )


def to_project_record(
    row: "ProjectRow", pdfs: Optional[list["PdfRow"]] = None
) -> ProjectRecord:
    pdf_rows = row.pdfs if pdfs is None else pdfs
    return ProjectRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        data=row.data or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
        pdfs=[to_pdf_record(pdf) for pdf in pdf_rows],
    )


def insert_project(session: Session, owner_id: str, name: str, data: dict) -> "ProjectRow":
    now = _utcnow()
    row = ProjectRow(
        id=_new_id(),
        user_id=owner_id,
        name=name,
        data=data,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    session.flush()
    return row


def insert_pdf(
    session: Session,
    project_id: str,
    *,
    name: str,
    file_url: str,
    file_size: int,
    level: str = "",
) -> "PdfRow":
    row = PdfRow(
        id=_new_id(),
        project_id=project_id,
        name=name,
        file_url=file_url,
        file_size=file_size,
        level=level,
        created_at=_utcnow(),
    )
    session.add(row)
    session.flush()
    return row


def load_owned_project(
    session: Session, project_id: str, owner_id: str
) -> Optional["ProjectRow"]:
    stmt = select(ProjectRow).where(
        ProjectRow.id == project_id, ProjectRow.user_id == owner_id
    )
    return session.execute(stmt).scalar_one_or_none()


def list_owned_projects(session: Session, owner_id: str) -> list["ProjectRow"]:
    stmt = (
        select(ProjectRow)
        .where(ProjectRow.user_id == owner_id)
        .order_by(ProjectRow.created_at.desc())
    )
    return list(session.execute(stmt).scalars().all())


def update_owned_project(
    session: Session,
    project_id: str,
    owner_id: str,
    *,
    name: Optional[str] = None,
    data: Optional[dict] = None,
) -> int:
    values: dict = {"updated_at": _utcnow()}
    if name is not None:
        values["name"] = name
    if data is not None:
        values["data"] = data
    result = session.execute(
        update(ProjectRow)
        .where(ProjectRow.id == project_id, ProjectRow.user_id == owner_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def select_pdf_urls(session: Session, project_id: str) -> list[str]:
    stmt = select(PdfRow.file_url).where(PdfRow.project_id == project_id)
    return list(session.execute(stmt).scalars().all())


def delete_owned_project(session: Session, project_id: str, owner_id: str) -> int:
    result = session.execute(
        delete(ProjectRow)
        .where(ProjectRow.id == project_id, ProjectRow.user_id == owner_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def load_owned_pdf(session: Session, pdf_id: str, owner_id: str) -> Optional["PdfRow"]:
    stmt = (
        select(PdfRow)
        .join(ProjectRow, PdfRow.project_id == ProjectRow.id)
        .where(PdfRow.id == pdf_id, ProjectRow.user_id == owner_id)
    )
    return session.execute(stmt).scalar_one_or_none()


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True)
    user_id = Column(
        String(32),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    pdfs = relationship(
        "PdfRow",
        order_by="PdfRow.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class PdfRow(Base):
    __tablename__ = "pdfs"

    id = Column(String(32), primary_key=True)
    project_id = Column(
        String(32),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(512), nullable=False)
    file_url = Column(Text, nullable=False)
    file_size = Column(BigInteger, nullable=False)
    level = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)
