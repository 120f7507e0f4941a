"""API routes for the projects module."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xuanwu.core.database import get_db
from xuanwu.core.logging import get_logger
from xuanwu.modules.projects.models import Application, Project
from xuanwu.modules.projects.schemas import (
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    ProjectCreate,
    ProjectListResponse,
    ProjectResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Projects"])


# =============================================================================
# Project Routes
# =============================================================================

@router.get("/projects", response_model=ProjectListResponse)
async def list_projects(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List projects, newest first."""
    query = select(Project)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(Project.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)
    items = result.scalars().all()

    return ProjectListResponse(
        items=[ProjectResponse.model_validate(p) for p in items],
        total=total or 0,
    )


@router.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    data: ProjectCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register a new project."""
    project = Project(
        name=data.name,
        namespace=data.namespace,
        description=data.description,
    )
    db.add(project)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail=f"Namespace {data.namespace} is already in use")
    await db.refresh(project)

    logger.info("Project created", project_id=str(project.id), namespace=project.namespace)
    return ProjectResponse.model_validate(project)


@router.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific project by ID."""
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectResponse.model_validate(project)


# =============================================================================
# Application Routes
# =============================================================================

@router.get("/projects/{project_id}/applications", response_model=ApplicationListResponse)
async def list_applications(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """List the applications of a project."""
    if not await db.get(Project, project_id):
        raise HTTPException(status_code=404, detail="Project not found")

    query = (
        select(Application)
        .where(Application.project_id == project_id)
        .order_by(Application.created_at.desc())
    )
    result = await db.execute(query)
    items = result.scalars().all()

    return ApplicationListResponse(
        items=[ApplicationResponse.model_validate(a) for a in items],
        total=len(items),
    )


@router.post("/projects/{project_id}/applications", response_model=ApplicationResponse, status_code=201)
async def create_application(
    project_id: UUID,
    data: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register an application in a project."""
    if not await db.get(Project, project_id):
        raise HTTPException(status_code=404, detail="Project not found")

    application = Application(
        project_id=project_id,
        name=data.name,
        repository_url=data.repository_url,
        branch=data.branch,
        build_type=data.build_type.value,
        dockerfile_path=data.dockerfile_path,
        build_config=data.build_config,
    )
    db.add(application)
    await db.commit()
    await db.refresh(application)

    logger.info("Application created", application_id=str(application.id), project_id=str(project_id))
    return ApplicationResponse.model_validate(application)


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific application by ID."""
    application = await db.get(Application, application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Application not found")
    return ApplicationResponse.model_validate(application)
