"""
Base model with common fields and methods
"""
from fieldops import db
from datetime import datetime, timezone
import uuid


def generate_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops the offset on the way back)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseModel(db.Model):
    """Abstract base model with common fields"""
    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self, exclude=None):
        """
        Convert model to dictionary

        Args:
            exclude (list): List of fields to exclude

        Returns:
            dict: Model as dictionary
        """
        exclude = exclude or []
        data = {}

        for column in self.__table__.columns:
            if column.name not in exclude:
                value = getattr(self, column.name)

                if isinstance(value, datetime):
                    value = as_utc(value).isoformat()

                data[column.name] = value

        return data
