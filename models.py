"""
Database models for the portfolio application.
Every project row is owned by exactly one identity; all queries filter on owner_id.
"""
import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, the form stored in created_at."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id():
    return str(uuid.uuid4())


class Project(db.Model):
    """A showcased project entry."""
    __tablename__ = 'projects'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    owner_id = db.Column(db.String(128), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    technologies = db.Column(db.String(500), nullable=False)  # comma separated
    github_url = db.Column(db.String(500))
    live_demo_url = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    # Columns a caller may set; id, owner_id and created_at are never taken from input.
    EDITABLE_FIELDS = ('title', 'description', 'technologies', 'github_url', 'live_demo_url')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'title': self.title,
            'description': self.description,
            'technologies': self.technologies,
            'github_url': self.github_url or '',
            'live_demo_url': self.live_demo_url or '',
            'created_at': self.created_at,
        }

    def __repr__(self):
        return f'<Project {self.title} ({self.id})>'
