"""API router package."""

from fastapi import APIRouter

from taskflow.api.v1 import auth, health, permissions, projects, tasks, websocket, workspaces

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(tasks.batch_router, prefix="/workspaces", tags=["Tasks"])
router.include_router(workspaces.router, prefix="/workspaces", tags=["Workspaces"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(permissions.router, prefix="/permissions", tags=["Permissions"])
router.include_router(websocket.router, tags=["WebSocket"])
