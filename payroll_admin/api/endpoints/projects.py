import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from payroll_admin.core.database import get_db
from payroll_admin.core.security import require_staff
from payroll_admin.models.admin import ProjectCreate, ProjectUpdate
from payroll_admin.models.common import Project, Principal

router = APIRouter()
logger = logging.getLogger(__name__)

def project_from_row(row) -> Project:
    return Project(
        id=row['id'],
        title=row['title'],
        description=row['description'],
        is_active=bool(row['is_active']),
        created_at=row['created_at'],
    )

@router.get("/projects", response_model=List[Project])
async def list_projects(include_inactive: bool = False, principal: Principal = Depends(require_staff)):
    with get_db() as conn:
        cursor = conn.cursor()
        query = "SELECT * FROM projects"
        if not include_inactive:
            query += " WHERE is_active = TRUE"
        cursor.execute(query + " ORDER BY title")
        return [project_from_row(row) for row in cursor.fetchall()]

@router.post("/projects", response_model=Project)
async def create_project(project: ProjectCreate, principal: Principal = Depends(require_staff)):
    title = project.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Project title is required")

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO projects (title, description, created_at) VALUES (?, ?, ?)",
            (title, project.description, datetime.now().isoformat())
        )
        conn.commit()
        cursor.execute("SELECT * FROM projects WHERE id = ?", (cursor.lastrowid,))
        created = project_from_row(cursor.fetchone())

    logger.info(f"Project '{title}' ({created.id}) created by {principal.full_name}")
    return created

@router.put("/projects/{project_id}", response_model=Project)
async def update_project(project_id: int, project: ProjectUpdate, principal: Principal = Depends(require_staff)):
    changes = project.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if 'title' in changes and not changes['title'].strip():
        raise HTTPException(status_code=400, detail="Project title is required")

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM projects WHERE id = ?", (project_id,))
        if not cursor.fetchone():
            raise HTTPException(status_code=404, detail="Project not found")

        assignments = ", ".join(f"{column} = ?" for column in changes)
        cursor.execute(
            f"UPDATE projects SET {assignments} WHERE id = ?",
            list(changes.values()) + [project_id]
        )
        conn.commit()

        cursor.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
        updated = project_from_row(cursor.fetchone())

    logger.info(f"Project {project_id} updated by {principal.full_name}: {', '.join(changes)}")
    return updated
