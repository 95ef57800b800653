"""
Project repository client.

DataService is the single process-wide handle on the hosted data service.
ProjectRepository keeps a live, owner-scoped view of the projects table:
it subscribes to change notifications and re-queries on every one of them.
Errors never escape a repository call; they come back as strings and are
kept on `repository.error`.
"""
import logging
import threading
from collections import OrderedDict
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from debounce import Debounced
from models import Project, db

logger = logging.getLogger(__name__)

TABLE_NAME = Project.__tablename__

NOT_READY_ERROR = 'Error: Data service not ready or User ID missing.'
LOAD_ERROR = f"Failed to load projects. Ensure the '{TABLE_NAME}' table is created in the data service."
ADD_ERROR = 'Failed to add project. Ensure the table and its access policies are correct.'
UPDATE_ERROR = 'Failed to save changes. Check the table access policies.'
DELETE_ERROR = 'Failed to delete project. Check the table access policies.'
NOT_FOUND_ERROR = 'Project not found.'

_FIELD_ALIASES = {
    'githubUrl': 'github_url',
    'liveDemoUrl': 'live_demo_url',
}


class DataServiceError(Exception):
    """A query or mutation against the data service failed."""


class ProjectNotFound(DataServiceError):
    pass


def clean_fields(fields: dict) -> dict:
    """Keep only editable project columns; never id, owner_id or created_at."""
    cleaned = {}
    for key, value in (fields or {}).items():
        key = _FIELD_ALIASES.get(key, key)
        if key in Project.EDITABLE_FIELDS:
            cleaned[key] = value.strip() if isinstance(value, str) else value
    return cleaned


class DataService:
    """Owner-scoped CRUD on the projects table. Each call runs in its own app context."""

    def __init__(self, app, database=db):
        self.app = app
        self.db = database

    def _run(self, operation):
        with self.app.app_context():
            try:
                return operation(self.db.session)
            except SQLAlchemyError as e:
                self.db.session.rollback()
                raise DataServiceError(str(e)) from e

    def _owned(self, session, project_id, owner_id):
        project = session.execute(
            self.db.select(Project).filter_by(id=project_id, owner_id=owner_id)
        ).scalar_one_or_none()
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def select_projects(self, owner_id: str) -> list[dict]:
        def operation(session):
            rows = session.execute(
                self.db.select(Project)
                .filter_by(owner_id=owner_id)
                .order_by(Project.created_at.desc())
            ).scalars()
            return [row.to_dict() for row in rows]
        return self._run(operation)

    def insert_project(self, owner_id: str, values: dict) -> dict:
        def operation(session):
            project = Project(owner_id=owner_id, **values)
            session.add(project)
            session.commit()
            return project.to_dict()
        return self._run(operation)

    def update_project(self, project_id: str, owner_id: str, values: dict) -> dict:
        def operation(session):
            project = self._owned(session, project_id, owner_id)
            for key, value in values.items():
                setattr(project, key, value)
            session.commit()
            return project.to_dict()
        return self._run(operation)

    def delete_project(self, project_id: str, owner_id: str) -> None:
        def operation(session):
            session.delete(self._owned(session, project_id, owner_id))
            session.commit()
        self._run(operation)


class SyncState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    SUBSCRIBING = 'subscribing'
    SYNCED = 'synced'
    REQUERYING = 'requerying'
    ERROR = 'error'


class ProjectRepository:
    """Live list of one identity's projects plus create/update/delete."""

    def __init__(self, service: Optional[DataService], owner_id: Optional[str], feed=None,
                 channel: str = 'public_projects_changes', debounce_delay: float = 0.3,
                 timer_factory=None):
        self.service = service
        self.owner_id = owner_id
        self.feed = feed
        self.channel = channel

        self.projects = []
        self.error = None
        self.loading = True
        self.state = SyncState.UNINITIALIZED

        self._lock = threading.RLock()
        self._epoch = 0
        self._subscription = None

        if timer_factory is None:
            self.add = Debounced(self.create, debounce_delay)
        else:
            self.add = Debounced(self.create, debounce_delay, timer_factory=timer_factory)

    @property
    def ready(self) -> bool:
        return self.service is not None and bool(self.owner_id)

    def _not_ready(self) -> str:
        logger.error('Data operation refused: service configured=%s, owner=%r',
                     self.service is not None, self.owner_id)
        self.error = NOT_READY_ERROR
        return NOT_READY_ERROR

    # --- live view -------------------------------------------------------

    def activate(self) -> None:
        if not self.ready:
            self._not_ready()
            return
        if self.feed is None:
            # No change notifications: a one-off load.
            self.refresh()
            return
        with self._lock:
            if self._subscription is not None:
                return
            self.state = SyncState.SUBSCRIBING
        subscription = self.feed.subscribe(self.channel, TABLE_NAME, self._on_change, self._on_status)
        with self._lock:
            self._subscription = subscription

    def _on_status(self, status):
        if status == 'SUBSCRIBED':
            self.refresh()

    def _on_change(self, change):
        logger.debug('%s changed (%s); re-querying for %s', change.table, change.event, self.owner_id)
        self.refresh()

    def refresh(self) -> Optional[str]:
        """Re-query the owner's projects. Superseded results are discarded."""
        if not self.ready:
            return self._not_ready()

        with self._lock:
            self._epoch += 1
            epoch = self._epoch
            if self.state == SyncState.SYNCED:
                self.state = SyncState.REQUERYING

        try:
            rows = self.service.select_projects(self.owner_id)
        except DataServiceError:
            logger.exception('Error fetching projects for %s', self.owner_id)
            with self._lock:
                if epoch == self._epoch:
                    self.error = LOAD_ERROR
                    self.state = SyncState.ERROR
                    self.loading = False
            return LOAD_ERROR

        with self._lock:
            if epoch != self._epoch:
                logger.debug('Discarding stale re-query %d for %s', epoch, self.owner_id)
                return None
            self.projects = rows
            self.error = None
            self.state = SyncState.SYNCED
            self.loading = False
        return None

    def teardown(self) -> None:
        self.add.cancel()
        with self._lock:
            subscription, self._subscription = self._subscription, None
            self._epoch += 1
            self.state = SyncState.UNINITIALIZED
        if subscription is not None:
            subscription.release()

    def __enter__(self):
        self.activate()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.teardown()
        return False

    def find(self, project_id) -> Optional[dict]:
        for project in self.projects:
            if project['id'] == project_id:
                return project
        return None

    # --- mutations -------------------------------------------------------

    def create(self, fields: dict) -> Optional[str]:
        if not self.ready:
            return self._not_ready()
        try:
            self.service.insert_project(self.owner_id, clean_fields(fields))
        except DataServiceError:
            logger.exception('Error adding project for %s', self.owner_id)
            self.error = ADD_ERROR
            return ADD_ERROR
        self.error = None
        return None

    def update(self, project_id, fields: dict) -> Optional[str]:
        if not self.ready:
            return self._not_ready()
        try:
            self.service.update_project(project_id, self.owner_id, clean_fields(fields))
        except ProjectNotFound:
            self.error = NOT_FOUND_ERROR
            return NOT_FOUND_ERROR
        except DataServiceError:
            logger.exception('Error updating project %s', project_id)
            self.error = UPDATE_ERROR
            return UPDATE_ERROR
        self.error = None
        return None

    def delete(self, project_id) -> Optional[str]:
        if not self.ready:
            return self._not_ready()
        try:
            self.service.delete_project(project_id, self.owner_id)
        except ProjectNotFound:
            self.error = NOT_FOUND_ERROR
            return NOT_FOUND_ERROR
        except DataServiceError:
            logger.exception('Error deleting project %s', project_id)
            self.error = DELETE_ERROR
            return DELETE_ERROR
        self.error = None
        return None


class RepositoryRegistry:
    """One live repository per identity; the least recently used is torn down past max_size."""

    def __init__(self, factory, max_size: int = 128):
        self.factory = factory
        self.max_size = max_size
        self._lock = threading.Lock()
        self._repositories = OrderedDict()

    def get(self, owner_id) -> ProjectRepository:
        evicted = []
        with self._lock:
            repository = self._repositories.get(owner_id)
            if repository is not None:
                self._repositories.move_to_end(owner_id)
                return repository
            repository = self.factory(owner_id)
            self._repositories[owner_id] = repository
            while len(self._repositories) > self.max_size:
                evicted.append(self._repositories.popitem(last=False)[1])
        for old in evicted:
            old.teardown()
        repository.activate()
        return repository

    def release(self, owner_id) -> None:
        with self._lock:
            repository = self._repositories.pop(owner_id, None)
        if repository is not None:
            repository.teardown()

    def close(self) -> None:
        with self._lock:
            repositories = list(self._repositories.values())
            self._repositories.clear()
        for repository in repositories:
            repository.teardown()

    def __len__(self):
        return len(self._repositories)

    def __contains__(self, owner_id):
        return owner_id in self._repositories
