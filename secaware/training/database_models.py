"""
SQLAlchemy ORM models for training modules and per-user progress.
"""

import json

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import validates
from sqlalchemy.schema import UniqueConstraint

from secaware.database.base import ModelBase, utcnow
from secaware.training.models import ProgressStatus


class TrainingModule(ModelBase):
    """
    A unit of training content.

    ``prerequisites`` holds a JSON array of module ids that must be completed
    before this module can be started.
    """
    __tablename__ = 'training_modules'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="General Security")
    content_type = Column(String(50), nullable=False, default="interactive")
    content_url = Column(String(500), nullable=True)
    duration = Column(Integer, nullable=True)
    prerequisites = Column(Text, nullable=False, default="[]")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @validates('prerequisites')
    def validate_prerequisites(self, key, prerequisites):
        """Lists are stored as JSON text."""
        if isinstance(prerequisites, (list, tuple)):
            return json.dumps(list(prerequisites))
        return prerequisites


class TrainingProgress(ModelBase):
    """One user's progress on one module. Created on first start, updated in place."""
    __tablename__ = 'training_progress'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False)
    module_id = Column(Integer, ForeignKey('training_modules.id', ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ProgressStatus.NOT_STARTED.value)
    progress_percentage = Column(Integer, nullable=False, default=0)
    time_spent = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'module_id', name='uq_training_progress_user_module'),
        Index('idx_training_progress_user_updated', 'user_id', 'updated_at'),
    )
