"""
Database abstraction for SQL backends and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    event,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from dokasah.errors import SlugConflict


class DbClient(Protocol):
    """Interface for database access."""

    def upsert_user(
        self, email: str, name: str, profile_picture: Optional[str] = None
    ) -> "UserRecord":
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def set_user_role(self, email: str, role: str) -> bool:
        ...

    def save_form_structure(self, form_type: str, structure: dict) -> None:
        ...

    def get_form_structure(self, form_type: str) -> Optional["FormStructureRecord"]:
        ...

    def create_form_config(
        self, form_type: str, assigned_email: str, slug: str
    ) -> "FormConfigRecord":
        ...

    def get_form_config(self, slug: str) -> Optional["FormConfigRecord"]:
        ...

    def get_submission(
        self, form_config_id: int, user_id: int
    ) -> Optional["SubmissionRecord"]:
        ...

    def upsert_submission(
        self,
        form_config_id: int,
        user_id: int,
        data: dict,
        *,
        status: Optional[str] = None,
    ) -> "SubmissionRecord":
        ...

    def update_submission_status(
        self, form_config_id: int, status: str, *, user_id: Optional[int] = None
    ) -> int:
        ...

    def delete_form_config(self, form_config_id: int) -> None:
        ...

    def list_form_overview(
        self, assigned_email: Optional[str] = None
    ) -> list["FormOverviewRecord"]:
        ...

    def list_slugs_for_email(self, email: str) -> set[str]:
        ...

    def get_folder_name(self, slug: str) -> Optional["FolderNameRecord"]:
        ...

    def upsert_folder_name(
        self, form_config_id: int, slug: str, display_name: str
    ) -> bool:
        ...

    def get_folder_names(self, slugs: Iterable[str]) -> Dict[str, str]:
        ...

    def close(self) -> None:
        ...


@dataclass
class UserRecord:
    id: int
    email: str
    name: Optional[str]
    role: str = "user"
    profile_pictures: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "profile_pictures": self.profile_pictures,
        }


@dataclass
class FormStructureRecord:
    form_type: str
    form_structure: dict


@dataclass
class FormConfigRecord:
    id: int
    form_type: str
    assigned_email: str
    slug: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "form_type": self.form_type,
            "assigned_email": self.assigned_email,
            "slug": self.slug,
            "created_at": self.created_at,
        }


@dataclass
class SubmissionRecord:
    id: int
    form_config_id: int
    user_id: int
    data: dict
    status: Optional[str] = None
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "form_config_id": self.form_config_id,
            "user_id": self.user_id,
            "data": self.data,
            "status": self.status,
            "updated_at": self.updated_at,
        }


@dataclass
class FormOverviewRecord:
    """A form instance joined with its most recently updated submission."""

    id: int
    form_type: str
    assigned_email: str
    slug: str
    created_at: float
    status: Optional[str] = None
    updated_at: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "form_type": self.form_type,
            "assigned_email": self.assigned_email,
            "slug": self.slug,
            "created_at": self.created_at,
            "status": self.status,
            "updated_at": self.updated_at,
        }


@dataclass
class FolderNameRecord:
    form_config_id: int
    slug: str
    display_name: str


def _collapse_overview(
    pairs: Iterable[tuple[FormConfigRecord, Optional[SubmissionRecord]]],
) -> list[FormOverviewRecord]:
    """Keep the latest submission per instance, newest first, no submission last."""
    latest: Dict[int, FormOverviewRecord] = {}
    for config, submission in pairs:
        current = latest.get(config.id)
        if current is None:
            current = FormOverviewRecord(
                id=config.id,
                form_type=config.form_type,
                assigned_email=config.assigned_email,
                slug=config.slug,
                created_at=config.created_at,
            )
            latest[config.id] = current
        if submission is None:
            continue
        if current.updated_at is None or submission.updated_at > current.updated_at:
            current.status = submission.status
            current.updated_at = submission.updated_at
    return sorted(
        latest.values(),
        key=lambda row: (row.updated_at is None, -(row.updated_at or 0.0)),
    )


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.structures: Dict[str, FormStructureRecord] = {}
        self.configs: Dict[int, FormConfigRecord] = {}
        self.submissions: Dict[int, SubmissionRecord] = {}
        self.folders: Dict[str, FolderNameRecord] = {}
        self._ids: Dict[str, int] = {}

    def _next_id(self, table: str) -> int:
        self._ids[table] = self._ids.get(table, 0) + 1
        return self._ids[table]

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.structures.clear()
        self.configs.clear()
        self.submissions.clear()
        self.folders.clear()
        self._ids.clear()

    def upsert_user(
        self, email: str, name: str, profile_picture: Optional[str] = None
    ) -> UserRecord:
        user = self.users.get(email)
        if user is None:
            user = UserRecord(id=self._next_id("users"), email=email, name=name)
            self.users[email] = user
        else:
            user.name = name
        if profile_picture:
            user.profile_pictures = profile_picture
        return copy.copy(user)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        user = self.users.get(email)
        return copy.copy(user) if user else None

    def set_user_role(self, email: str, role: str) -> bool:
        user = self.users.get(email)
        if not user:
            return False
        user.role = role
        return True

    def save_form_structure(self, form_type: str, structure: dict) -> None:
        self.structures[form_type] = FormStructureRecord(form_type, structure)

    def get_form_structure(self, form_type: str) -> Optional[FormStructureRecord]:
        return self.structures.get(form_type)

    def create_form_config(
        self, form_type: str, assigned_email: str, slug: str
    ) -> FormConfigRecord:
        if any(config.slug == slug for config in self.configs.values()):
            raise SlugConflict(slug)
        record = FormConfigRecord(
            id=self._next_id("configs"),
            form_type=form_type,
            assigned_email=assigned_email,
            slug=slug,
        )
        self.configs[record.id] = record
        return copy.copy(record)

    def get_form_config(self, slug: str) -> Optional[FormConfigRecord]:
        for config in self.configs.values():
            if config.slug == slug:
                return copy.copy(config)
        return None

    def _find_submission(
        self, form_config_id: int, user_id: int
    ) -> Optional[SubmissionRecord]:
        for submission in self.submissions.values():
            if (
                submission.form_config_id == form_config_id
                and submission.user_id == user_id
            ):
                return submission
        return None

    def get_submission(
        self, form_config_id: int, user_id: int
    ) -> Optional[SubmissionRecord]:
        submission = self._find_submission(form_config_id, user_id)
        return copy.deepcopy(submission) if submission else None

    def upsert_submission(
        self,
        form_config_id: int,
        user_id: int,
        data: dict,
        *,
        status: Optional[str] = None,
    ) -> SubmissionRecord:
        submission = self._find_submission(form_config_id, user_id)
        if submission is None:
            submission = SubmissionRecord(
                id=self._next_id("submissions"),
                form_config_id=form_config_id,
                user_id=user_id,
                data=copy.deepcopy(data),
                status=status,
            )
            self.submissions[submission.id] = submission
        else:
            submission.data = copy.deepcopy(data)
            if status is not None:
                submission.status = status
            submission.updated_at = time.time()
        return copy.deepcopy(submission)

    def update_submission_status(
        self, form_config_id: int, status: str, *, user_id: Optional[int] = None
    ) -> int:
        updated = 0
        now = time.time()
        for submission in self.submissions.values():
            if submission.form_config_id != form_config_id:
                continue
            if user_id is not None and submission.user_id != user_id:
                continue
            submission.status = status
            submission.updated_at = now
            updated += 1
        return updated

    def delete_form_config(self, form_config_id: int) -> None:
        submissions = {
            key: submission
            for key, submission in self.submissions.items()
            if submission.form_config_id != form_config_id
        }
        configs = {
            key: config
            for key, config in self.configs.items()
            if key != form_config_id
        }
        self.submissions = submissions
        self.configs = configs

    def list_form_overview(
        self, assigned_email: Optional[str] = None
    ) -> list[FormOverviewRecord]:
        pairs: list[tuple[FormConfigRecord, Optional[SubmissionRecord]]] = []
        for config in self.configs.values():
            if assigned_email is not None and config.assigned_email != assigned_email:
                continue
            children = [
                submission
                for submission in self.submissions.values()
                if submission.form_config_id == config.id
            ]
            if not children:
                pairs.append((config, None))
            pairs.extend((config, submission) for submission in children)
        return _collapse_overview(pairs)

    def list_slugs_for_email(self, email: str) -> set[str]:
        return {
            config.slug
            for config in self.configs.values()
            if config.assigned_email == email
        }

    def get_folder_name(self, slug: str) -> Optional[FolderNameRecord]:
        return self.folders.get(slug)

    def upsert_folder_name(
        self, form_config_id: int, slug: str, display_name: str
    ) -> bool:
        existing = self.folders.get(slug)
        if existing:
            existing.display_name = display_name
            return False
        self.folders[slug] = FolderNameRecord(form_config_id, slug, display_name)
        return True

    def get_folder_names(self, slugs: Iterable[str]) -> Dict[str, str]:
        wanted = set(slugs)
        return {
            slug: record.display_name
            for slug, record in self.folders.items()
            if slug in wanted
        }

    def close(self) -> None:
        return None


def _delete_config_row(session: Session, form_config_id: int) -> int:
    result = session.execute(
        delete(FormConfigRow).where(FormConfigRow.id == form_config_id)
    )
    return result.rowcount


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url:
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            _enable_sqlite_savepoints(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            email=row.email,
            name=row.name,
            role=row.role,
            profile_pictures=row.profile_pictures,
        )

    def _to_config_record(self, row: "FormConfigRow") -> FormConfigRecord:
        return FormConfigRecord(
            id=row.id,
            form_type=row.form_type,
            assigned_email=row.assigned_email,
            slug=row.slug,
            created_at=row.created_at,
        )

    def _to_submission_record(self, row: "SubmissionRow") -> SubmissionRecord:
        return SubmissionRecord(
            id=row.id,
            form_config_id=row.form_config_id,
            user_id=row.user_id,
            data=row.data,
            status=row.status,
            updated_at=row.updated_at,
        )

    def upsert_user(
        self, email: str, name: str, profile_picture: Optional[str] = None
    ) -> UserRecord:
        now = time.time()
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            if row:
                row.name = name
                row.updated_at = now
            else:
                row = UserRow(
                    email=email,
                    name=name,
                    role="user",
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
            if profile_picture:
                row.profile_pictures = profile_picture
            session.commit()
            session.refresh(row)
            return self._to_user_record(row)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def set_user_role(self, email: str, role: str) -> bool:
        with self.Session() as session:
            result = session.execute(
                update(UserRow)
                .where(UserRow.email == email)
                .values(role=role, updated_at=time.time())
            )
            session.commit()
            return bool(result.rowcount)

    def save_form_structure(self, form_type: str, structure: dict) -> None:
        with self.Session() as session:
            existing = session.get(FormStructureRow, form_type)
            if existing:
                existing.form_structure = structure
            else:
                session.add(
                    FormStructureRow(form_type=form_type, form_structure=structure)
                )
            session.commit()

    def get_form_structure(self, form_type: str) -> Optional[FormStructureRecord]:
        with self.Session() as session:
            row = session.get(FormStructureRow, form_type)
            if not row:
                return None
            return FormStructureRecord(row.form_type, row.form_structure)

    def create_form_config(
        self, form_type: str, assigned_email: str, slug: str
    ) -> FormConfigRecord:
        with self.Session() as session:
            row = FormConfigRow(
                form_type=form_type,
                assigned_email=assigned_email,
                slug=slug,
                created_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                taken = session.execute(
                    select(FormConfigRow.id).where(FormConfigRow.slug == slug)
                ).first()
                if taken:
                    raise SlugConflict(slug)
                raise
            session.refresh(row)
            return self._to_config_record(row)

    def get_form_config(self, slug: str) -> Optional[FormConfigRecord]:
        with self.Session() as session:
            row = session.execute(
                select(FormConfigRow).where(FormConfigRow.slug == slug)
            ).scalar_one_or_none()
            return self._to_config_record(row) if row else None

    def _find_submission(
        self, session: Session, form_config_id: int, user_id: int
    ) -> Optional["SubmissionRow"]:
        return session.execute(
            select(SubmissionRow).where(
                SubmissionRow.form_config_id == form_config_id,
                SubmissionRow.user_id == user_id,
            )
        ).scalar_one_or_none()

    def get_submission(
        self, form_config_id: int, user_id: int
    ) -> Optional[SubmissionRecord]:
        with self.Session() as session:
            row = self._find_submission(session, form_config_id, user_id)
            return self._to_submission_record(row) if row else None

    def upsert_submission(
        self,
        form_config_id: int,
        user_id: int,
        data: dict,
        *,
        status: Optional[str] = None,
    ) -> SubmissionRecord:
        now = time.time()
        with self.Session() as session:
            row = self._find_submission(session, form_config_id, user_id)
            if row is None:
                try:
                    # A concurrent request may insert the same pair first; the
                    # unique constraint turns that into an update below.
                    with session.begin_nested():
                        row = SubmissionRow(
                            form_config_id=form_config_id,
                            user_id=user_id,
                            data=data,
                            status=status,
                            updated_at=now,
                        )
                        session.add(row)
                except IntegrityError:
                    row = self._find_submission(session, form_config_id, user_id)
                    if row is None:
                        # Not the (form, user) pair constraint.
                        raise
                    row.data = data
                    if status is not None:
                        row.status = status
                    row.updated_at = now
            else:
                row.data = data
                if status is not None:
                    row.status = status
                row.updated_at = now
            session.commit()
            session.refresh(row)
            return self._to_submission_record(row)

    def update_submission_status(
        self, form_config_id: int, status: str, *, user_id: Optional[int] = None
    ) -> int:
        stmt = update(SubmissionRow).where(
            SubmissionRow.form_config_id == form_config_id
        )
        if user_id is not None:
            stmt = stmt.where(SubmissionRow.user_id == user_id)
        with self.Session() as session:
            result = session.execute(
                stmt.values(status=status, updated_at=time.time())
            )
            session.commit()
            return result.rowcount or 0

    def delete_form_config(self, form_config_id: int) -> None:
        with self.Session() as session, session.begin():
            session.execute(
                delete(SubmissionRow).where(
                    SubmissionRow.form_config_id == form_config_id
                )
            )
            _delete_config_row(session, form_config_id)

    def list_form_overview(
        self, assigned_email: Optional[str] = None
    ) -> list[FormOverviewRecord]:
        stmt = select(FormConfigRow, SubmissionRow).outerjoin(
            SubmissionRow, SubmissionRow.form_config_id == FormConfigRow.id
        )
        if assigned_email is not None:
            stmt = stmt.where(FormConfigRow.assigned_email == assigned_email)
        with self.Session() as session:
            pairs = [
                (
                    self._to_config_record(config),
                    self._to_submission_record(submission) if submission else None,
                )
                for config, submission in session.execute(stmt).all()
            ]
        return _collapse_overview(pairs)

    def list_slugs_for_email(self, email: str) -> set[str]:
        with self.Session() as session:
            rows = session.execute(
                select(FormConfigRow.slug).where(
                    FormConfigRow.assigned_email == email
                )
            ).scalars()
            return set(rows)

    def get_folder_name(self, slug: str) -> Optional[FolderNameRecord]:
        with self.Session() as session:
            row = session.execute(
                select(FolderNameRow).where(FolderNameRow.slug == slug)
            ).scalar_one_or_none()
            if not row:
                return None
            return FolderNameRecord(row.form_config_id, row.slug, row.display_name)

    def upsert_folder_name(
        self, form_config_id: int, slug: str, display_name: str
    ) -> bool:
        with self.Session() as session:
            row = session.execute(
                select(FolderNameRow).where(FolderNameRow.slug == slug)
            ).scalar_one_or_none()
            created = row is None
            if created:
                session.add(
                    FolderNameRow(
                        form_config_id=form_config_id,
                        slug=slug,
                        display_name=display_name,
                    )
                )
            else:
                row.display_name = display_name
            session.commit()
            return created

    def get_folder_names(self, slugs: Iterable[str]) -> Dict[str, str]:
        wanted = list(set(slugs))
        if not wanted:
            return {}
        with self.Session() as session:
            rows = session.execute(
                select(FolderNameRow.slug, FolderNameRow.display_name).where(
                    FolderNameRow.slug.in_(wanted)
                )
            ).all()
            return {slug: display_name for slug, display_name in rows}


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users_legal"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default="user")
    profile_pictures = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class FormStructureRow(Base):
    __tablename__ = "form_structures"

    form_type = Column(String, primary_key=True)
    form_structure = Column(JSON, nullable=False)


class FormConfigRow(Base):
    __tablename__ = "form_configurations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    form_type = Column(String, nullable=False)
    assigned_email = Column(String, nullable=False, index=True)
    slug = Column(String, nullable=False, unique=True)
    created_at = Column(Float, nullable=False)


class SubmissionRow(Base):
    __tablename__ = "form_submissions"
    __table_args__ = (UniqueConstraint("form_config_id", "user_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    form_config_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    data = Column(JSON, nullable=False)
    status = Column(String, nullable=True)
    updated_at = Column(Float, nullable=False)


class FolderNameRow(Base):
    __tablename__ = "form_folder"

    id = Column(Integer, primary_key=True, autoincrement=True)
    form_config_id = Column("id_form", Integer, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    display_name = Column("nama_folder", String, nullable=False)
