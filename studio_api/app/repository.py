"""
Estimate and project scope queries.

Read queries are raw SQL so the returned keys are exactly the column labels
the database produces; inserts go through the Core table so the new primary
key comes back on every dialect. The scope upsert uses ON CONFLICT, which
SQLite and PostgreSQL both accept.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import insert

from .database import Database
from .models import estimates
from .schemas import EstimateCreate, ScopeUpsert

ESTIMATE_WITH_PROJECT_SQL = """
    SELECT
        e.*,
        p.name AS project_name,
        p.client_name,
        p.contact_email
    FROM estimates e
    LEFT JOIN projects p ON p.id = e.project_id
    WHERE e.id = :id
    LIMIT 1
"""

ESTIMATES_WITH_PROJECTS_SQL = """
    SELECT
        e.*,
        p.name AS project_name,
        p.client_name,
        p.contact_email
    FROM estimates e
    LEFT JOIN projects p ON p.id = e.project_id
    ORDER BY e.created_at DESC, e.id DESC
    LIMIT :limit
"""

ALL_ESTIMATES_SQL = "SELECT * FROM estimates ORDER BY created_at DESC, id DESC"

ESTIMATES_BY_PROJECT_SQL = """
    SELECT * FROM estimates
    WHERE project_id = :project_id
    ORDER BY created_at DESC, id DESC
"""

DELETE_ESTIMATE_SQL = "DELETE FROM estimates WHERE id = :id"

SCOPE_BY_PROJECT_SQL = "SELECT * FROM project_scope WHERE project_id = :project_id"

UPSERT_SCOPE_SQL = """
    INSERT INTO project_scope (
        project_id, contact_email, music_minutes, dialogue_hours,
        sound_design_hours, mix_hours, revision_hours
    ) VALUES (
        :project_id, :contact_email, :music_minutes, :dialogue_hours,
        :sound_design_hours, :mix_hours, :revision_hours
    )
    ON CONFLICT (project_id) DO UPDATE SET
        contact_email = excluded.contact_email,
        music_minutes = excluded.music_minutes,
        dialogue_hours = excluded.dialogue_hours,
        sound_design_hours = excluded.sound_design_hours,
        mix_hours = excluded.mix_hours,
        revision_hours = excluded.revision_hours,
        updated_at = CURRENT_TIMESTAMP
"""


class EstimateRepository:
    def __init__(self, database: Database):
        self._db = database

    async def get_with_project(self, estimate_id: int) -> Optional[Dict[str, Any]]:
        """
        Fetch one estimate merged with its project's name, client and contact.

        Project columns are None when the estimate has no matching project.
        """
        return await self._db.fetch_one(ESTIMATE_WITH_PROJECT_SQL, {"id": estimate_id})

    async def list_all(self) -> List[Dict[str, Any]]:
        return await self._db.fetch_all(ALL_ESTIMATES_SQL)

    async def list_with_projects(self, limit: int) -> List[Dict[str, Any]]:
        return await self._db.fetch_all(ESTIMATES_WITH_PROJECTS_SQL, {"limit": limit})

    async def list_by_project(self, project_id: int) -> List[Dict[str, Any]]:
        return await self._db.fetch_all(ESTIMATES_BY_PROJECT_SQL, {"project_id": project_id})

    async def create(self, estimate: EstimateCreate) -> int:
        new_id = await self._db.insert(insert(estimates).values(**estimate.to_row()))
        if new_id is None:
            raise RuntimeError("Failed to create estimate")
        return new_id

    async def delete(self, estimate_id: int) -> int:
        return await self._db.execute(DELETE_ESTIMATE_SQL, {"id": estimate_id})

    async def get_scope(self, project_id: int) -> Optional[Dict[str, Any]]:
        return await self._db.fetch_one(SCOPE_BY_PROJECT_SQL, {"project_id": project_id})

    async def save_scope(self, scope: ScopeUpsert) -> Optional[Dict[str, Any]]:
        """Insert or replace the project's scope and return the stored row."""
        await self._db.execute(UPSERT_SCOPE_SQL, scope.model_dump())
        return await self.get_scope(scope.project_id)
