"""Per-project reporting hierarchy."""

from collections import deque
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.domain.permissions import ADMIN_ROLES
from taskflow.errors import ForbiddenError, NotFoundError, ValidationError
from taskflow.models.project import Project
from taskflow.repositories.memberships import MembershipRepository
from taskflow.repositories.reporting import ReportingEdgeRepository
from taskflow.repositories.tasks import TaskRepository
from taskflow.services.batch import BatchCoordinator, BatchMode, BatchResult
from taskflow.services.permission import PermissionService

logger = structlog.get_logger()


class ReportingService:
    """Maintains manager -> subordinate edges and answers subordinate queries."""

    def __init__(self, db: AsyncSession, permissions: PermissionService):
        self.db = db
        self.permissions = permissions
        self.edges = ReportingEdgeRepository(db)
        self.memberships = MembershipRepository(db)
        self.tasks = TaskRepository(db)
        # project_id -> manager_id -> direct reports
        self._graphs: dict[UUID, dict[UUID, set[UUID]]] = {}

    async def _graph(self, project_id: UUID) -> dict[UUID, set[UUID]]:
        if project_id not in self._graphs:
            graph: dict[UUID, set[UUID]] = {}
            for manager_id, subordinate_id in await self.edges.list_edges(project_id):
                graph.setdefault(manager_id, set()).add(subordinate_id)
            self._graphs[project_id] = graph
        return self._graphs[project_id]

    def invalidate(self, project_id: UUID) -> None:
        self._graphs.pop(project_id, None)

    async def get_subordinates(self, manager_id: UUID, project_id: UUID) -> set[UUID]:
        """Every user reachable from ``manager_id`` through reporting edges.

        The manager is never included, even if stored data contains a cycle.
        """
        graph = await self._graph(project_id)
        visited: set[UUID] = {manager_id}
        queue = deque([manager_id])
        subordinates: set[UUID] = set()

        while queue:
            current = queue.popleft()
            for report in graph.get(current, ()):
                if report in visited:
                    continue
                visited.add(report)
                subordinates.add(report)
                queue.append(report)

        return subordinates

    async def get_direct_reports(self, manager_id: UUID, project_id: UUID) -> set[UUID]:
        graph = await self._graph(project_id)
        return set(graph.get(manager_id, ()))

    async def _get_project(self, project_id: UUID) -> Project:
        project = await self.tasks.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    async def list_subordinates(
        self,
        requester_id: UUID,
        project_id: UUID,
        manager_id: UUID,
        direct_only: bool = False,
    ) -> list[UUID]:
        """Subordinate lookup on behalf of a workspace member."""
        project = await self._get_project(project_id)
        if await self.permissions.get_role(requester_id, project.workspace_id) is None:
            raise ForbiddenError("Not a member of this workspace")

        if direct_only:
            found = await self.get_direct_reports(manager_id, project_id)
        else:
            found = await self.get_subordinates(manager_id, project_id)
        return sorted(found, key=str)

    async def _is_project_participant(self, project: Project, user_id: UUID) -> bool:
        if project.leader_id == user_id:
            return True
        return await self.memberships.is_project_member(project.id, user_id)

    async def set_reporting_relation(
        self,
        operator_id: UUID,
        project_id: UUID,
        subordinate_ids: list[UUID],
        manager_id: UUID | None,
    ) -> BatchResult[UUID]:
        """Point every subordinate at ``manager_id`` (or clear their manager).

        The whole request is validated before any edge is written.

        Raises:
            NotFoundError: unknown project
            ForbiddenError: operator is neither a workspace admin nor the project leader
            ValidationError: empty list, non-member, self-management or a cycle
        """
        project = await self._get_project(project_id)

        role = await self.permissions.get_role(operator_id, project.workspace_id)
        if role not in ADMIN_ROLES and project.leader_id != operator_id:
            raise ForbiddenError("Only the project leader or a workspace admin can set reporting lines")

        if manager_id is not None and not await self._is_project_participant(project, manager_id):
            raise ValidationError("Manager must be a member of the project")

        # subordinate -> manager, as it will look once the request is applied
        proposed: dict[UUID, UUID] = {}
        for manager, subordinate in await self.edges.list_edges(project_id):
            proposed[subordinate] = manager
        for subordinate_id in subordinate_ids:
            if manager_id is None:
                proposed.pop(subordinate_id, None)
            else:
                proposed[subordinate_id] = manager_id

        async def validate(subordinate_id: UUID) -> None:
            # Clearing an edge is allowed even for users who left the project
            if manager_id is None:
                return
            if subordinate_id == manager_id:
                raise ValidationError("A user cannot manage themselves")
            if not await self._is_project_participant(project, subordinate_id):
                raise ValidationError(f"User {subordinate_id} is not a member of the project")
            if self._reaches(proposed, manager_id, subordinate_id):
                raise ValidationError(
                    f"Assigning {manager_id} as manager of {subordinate_id} would create a cycle"
                )

        async def apply(subordinate_id: UUID) -> None:
            await self.edges.upsert(project_id, subordinate_id, manager_id)

        coordinator: BatchCoordinator[UUID] = BatchCoordinator(
            BatchMode.ALL_OR_NOTHING, name="set_reporting_relation"
        )
        result = await coordinator.run(subordinate_ids, apply, validate)
        await self.db.commit()
        self.invalidate(project_id)

        logger.info(
            "reporting_relation_set",
            project_id=str(project_id),
            manager_id=str(manager_id) if manager_id else None,
            subordinates=len(result.success),
            operator_id=str(operator_id),
        )
        return result

    @staticmethod
    def _reaches(managers: dict[UUID, UUID], start: UUID, target: UUID) -> bool:
        """Whether walking up the management chain from ``start`` hits ``target``."""
        seen: set[UUID] = set()
        current: UUID | None = start
        while current is not None and current not in seen:
            if current == target:
                return True
            seen.add(current)
            current = managers.get(current)
        return False
