"""Shared test fixtures: a file-backed SQLite database per test plus a seeded workspace."""

from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskflow.db.base import Base
from taskflow.db.session import build_engine, build_session_factory
from taskflow.domain.events import TaskStatusChanged
from taskflow.models import (
    Project,
    ProjectMember,
    Task,
    User,
    Workspace,
    WorkspaceMember,
)
from taskflow.repositories.tasks import TaskRepository
from taskflow.services.permission import PermissionService
from taskflow.services.reporting import ReportingService
from taskflow.services.task_lifecycle import TaskLifecycleService


@dataclass
class Seed:
    """Ids of the seeded fixture world.

    Workspace ``workspace_id`` holds project ``project_id`` led by ``lead``
    (a plain member by workspace role). ``other_workspace_id`` holds
    ``other_project_id`` and only ``owner`` belongs to both.
    """

    workspace_id: UUID
    other_workspace_id: UUID
    project_id: UUID
    other_project_id: UUID
    owner: UUID
    director: UUID
    manager: UUID
    lead: UUID
    alice: UUID
    bob: UUID
    guest: UUID
    outsider: UUID


class RecordingSink:
    def __init__(self):
        self.events: list[TaskStatusChanged] = []

    async def emit(self, event: TaskStatusChanged) -> None:
        self.events.append(event)


class FailingSink:
    async def emit(self, event: TaskStatusChanged) -> None:
        raise RuntimeError("notification backend down")


@pytest.fixture
async def engine(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskflow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed(session_factory) -> Seed:
    async with session_factory() as session:
        users = {
            name: User(email=f"{name}@example.com", display_name=name.title())
            for name in ("owner", "director", "manager", "lead", "alice", "bob", "guest", "outsider")
        }
        session.add_all(users.values())

        workspace = Workspace(name="Acme")
        other_workspace = Workspace(name="Globex")
        session.add_all([workspace, other_workspace])
        await session.flush()

        project = Project(name="Launch", workspace_id=workspace.id, leader_id=users["lead"].id)
        other_project = Project(name="Elsewhere", workspace_id=other_workspace.id)
        session.add_all([project, other_project])
        await session.flush()

        # Legacy role codes on purpose: admin -> director, observer -> guest
        roles = {
            "owner": "owner",
            "director": "admin",
            "manager": "leader",
            "lead": "member",
            "alice": "member",
            "bob": "member",
            "guest": "observer",
        }
        for name, role in roles.items():
            session.add(WorkspaceMember(workspace_id=workspace.id, user_id=users[name].id, role=role))
        session.add(
            WorkspaceMember(workspace_id=other_workspace.id, user_id=users["owner"].id, role="owner")
        )

        for name in ("alice", "bob", "manager"):
            session.add(ProjectMember(project_id=project.id, user_id=users[name].id))

        await session.commit()

        return Seed(
            workspace_id=workspace.id,
            other_workspace_id=other_workspace.id,
            project_id=project.id,
            other_project_id=other_project.id,
            **{name: user.id for name, user in users.items()},
        )


@pytest.fixture
def make_task(db, seed):
    """Insert a task directly in a given status."""

    async def _make(
        status: str = "todo",
        assignee: UUID | None = None,
        creator: UUID | None = None,
        parent: UUID | None = None,
        project: UUID | None = None,
        title: str = "Task",
    ) -> UUID:
        task = Task(
            title=title,
            status=status,
            project_id=project or seed.project_id,
            created_by_id=creator or seed.bob,
            assignee_id=assignee if assignee is not None else seed.alice,
            parent_task_id=parent,
        )
        db.add(task)
        await db.commit()
        return task.id

    return _make


@pytest.fixture
def reload(db):
    async def _reload(task_id: UUID) -> Task | None:
        return await TaskRepository(db).get(task_id)

    return _reload


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def permissions(db) -> PermissionService:
    return PermissionService(db)


@pytest.fixture
def lifecycle(db, permissions, sink) -> TaskLifecycleService:
    return TaskLifecycleService(db, permissions, sink)


@pytest.fixture
def reporting(db, permissions) -> ReportingService:
    return ReportingService(db, permissions)
