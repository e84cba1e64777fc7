"""SQLite database operations for projects."""
import sqlite3
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence
from contextlib import contextmanager

from utils.logger import setup_logger
from extraction.models import BookType, Position
from storage.models import Project, ProjectSummary
import config

logger = setup_logger(__name__)


class ProjectNotFoundError(Exception):
    """Raised when a project id does not exist."""
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Manages SQLite database operations."""

    def __init__(self, db_path: Path = config.DB_PATH):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _initialize_schema(self):
        """Create tables if they don't exist."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, 'r') as f:
            schema_sql = f.read()

        with self._get_connection() as conn:
            conn.executescript(schema_sql)
            conn.commit()

        logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def _write_project(self, conn: sqlite3.Connection, project: Project, insert: bool) -> None:
        summary = project.summary()
        project_json = json.dumps(project.model_dump(mode='json'), ensure_ascii=False)
        params = {
            'id': project.id,
            'title': project.title,
            'book_type': project.book_type.value,
            'chapter_count': summary.chapter_count,
            'entity_count': summary.entity_count,
            'project_json': project_json,
            'created_at': project.created_at,
            'updated_at': project.updated_at,
        }
        if insert:
            conn.execute(
                """
                INSERT INTO projects (id, title, book_type, chapter_count, entity_count, project_json, created_at, updated_at)
                VALUES (:id, :title, :book_type, :chapter_count, :entity_count, :project_json, :created_at, :updated_at)
                """,
                params
            )
        else:
            cursor = conn.execute(
                """
                UPDATE projects
                SET title = :title, book_type = :book_type, chapter_count = :chapter_count,
                    entity_count = :entity_count, project_json = :project_json, updated_at = :updated_at
                WHERE id = :id
                """,
                params
            )
            if cursor.rowcount == 0:
                raise ProjectNotFoundError(f"Project not found: {project.id}")

    def insert_project(self, project: Project) -> str:
        """Insert a new project record.

        Args:
            project: Project to store

        Returns:
            Project id
        """
        with self._get_connection() as conn:
            self._write_project(conn, project, insert=True)
            conn.commit()

        logger.info(f"Inserted project: {project.title} (ID: {project.id})")
        return project.id

    def update_project(self, project: Project) -> Project:
        """Replace a stored project, bumping its update time.

        Args:
            project: Project with changes

        Returns:
            The stored project
        """
        updated = project.model_copy(update={'updated_at': _now()})

        with self._get_connection() as conn:
            self._write_project(conn, updated, insert=False)
            conn.commit()

        return updated

    def get_project(self, project_id: str) -> Project:
        """Retrieve a project.

        Args:
            project_id: Project id

        Returns:
            Project

        Raises:
            ProjectNotFoundError: If no project has this id
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT project_json FROM projects WHERE id = ?",
                (project_id,)
            ).fetchone()

        if not row:
            raise ProjectNotFoundError(f"Project not found: {project_id}")

        try:
            return Project.model_validate_json(row['project_json'])
        except ValueError as e:
            logger.error(f"Failed to decode project_json for project {project_id}")
            logger.error(f"Error: {e}")
            raise

    def find_project_by_title(self, title: str) -> Optional[ProjectSummary]:
        """Find a project whose title matches case-insensitively.

        Args:
            title: Title to look up

        Returns:
            Project summary or None
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE title = ? COLLATE NOCASE",
                (title,)
            ).fetchone()

            return self._summary_from_row(row) if row else None

    def get_all_projects(self) -> List[ProjectSummary]:
        """Get all projects, most recently updated first.

        Returns:
            List of project summaries
        """
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM projects ORDER BY updated_at DESC").fetchall()
            return [self._summary_from_row(row) for row in rows]

    def get_all_titles(self) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT title FROM projects").fetchall()
            return [row['title'] for row in rows]

    def delete_project(self, project_id: str) -> None:
        """Delete a project and its run records.

        Args:
            project_id: Project id
        """
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            deleted = cursor.rowcount
            conn.commit()

        if deleted == 0:
            raise ProjectNotFoundError(f"Project not found: {project_id}")

        logger.info(f"Deleted project {project_id}")

    def apply_extraction(
        self,
        project_id: str,
        entities: Sequence,
        replace: bool = False,
        book_type: Optional[BookType] = None
    ) -> Project:
        """Merge the entities of a completed extraction run into a project.

        The whole entity collection is written at once, so readers never
        see a partially merged result.

        Args:
            project_id: Project id
            entities: Positioned entities from the run
            replace: Drop the project's existing entities first
            book_type: New book type, only allowed together with replace

        Returns:
            Updated project

        Raises:
            ValueError: If book_type changes without replace
        """
        project = self.get_project(project_id)
        book_type = book_type or project.book_type
        if book_type != project.book_type and not replace:
            raise ValueError(
                f"Cannot add {book_type.value} cards to a {project.book_type.value} project without replacing them"
            )
        kept = [] if replace else list(project.entities)

        updated = self.update_project(
            project.model_copy(update={'entities': kept + list(entities), 'book_type': book_type})
        )

        logger.info(
            f"Applied {len(entities)} entities to project {project_id} "
            f"({'replaced' if replace else 'appended'}, {len(updated.entities)} total)"
        )
        return updated

    def add_entity(self, project_id: str, entity) -> Project:
        """Append a single entity to a project."""
        project = self.get_project(project_id)
        return self.update_project(
            project.model_copy(update={'entities': list(project.entities) + [entity]})
        )

    def delete_entity(self, project_id: str, entity_id: str) -> Project:
        """Remove an entity from a project."""
        project = self.get_project(project_id)
        remaining = [e for e in project.entities if e.id != entity_id]

        if len(remaining) == len(project.entities):
            logger.warning(f"Entity {entity_id} not found in project {project_id}")
            return project

        return self.update_project(project.model_copy(update={'entities': remaining}))

    def get_entity_positions(self, project_id: str) -> List[Position]:
        return self.get_project(project_id).entity_positions()

    def insert_extraction_run(
        self,
        project_id: str,
        mode: str,
        status: str = "running"
    ) -> str:
        """Insert an extraction run record.

        Args:
            project_id: Project id
            mode: Book type used for the run
            status: Initial status

        Returns:
            Run UUID
        """
        run_id = str(uuid.uuid4())

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO extraction_runs (id, project_id, mode, status, started_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (run_id, project_id, mode, status, _now())
            )
            conn.commit()

        return run_id

    def update_extraction_run(
        self,
        run_id: str,
        status: str,
        entity_count: Optional[int] = None,
        error: Optional[str] = None,
        log_text: Optional[str] = None
    ) -> None:
        """Update extraction run status.

        Args:
            run_id: Run UUID
            status: New status
            entity_count: Entities produced
            error: Error message if failed
            log_text: Rendered run log
        """
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE extraction_runs
                SET status = ?, completed_at = ?, entity_count = ?, error = ?, log_text = ?
                WHERE id = ?
                """,
                (status, _now(), entity_count, error, log_text, run_id)
            )
            conn.commit()

    def get_extraction_runs(self, project_id: str) -> List[Dict[str, Any]]:
        """Get extraction runs of a project, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM extraction_runs WHERE project_id = ? ORDER BY started_at DESC",
                (project_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def _summary_from_row(self, row: sqlite3.Row) -> ProjectSummary:
        return ProjectSummary(
            id=row['id'],
            title=row['title'],
            book_type=row['book_type'],
            chapter_count=row['chapter_count'],
            entity_count=row['entity_count'],
            updated_at=row['updated_at']
        )
