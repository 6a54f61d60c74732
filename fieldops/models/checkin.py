"""Check-in / check-out records"""
from fieldops import db
from .base import BaseModel

CHECKIN = 'checkin'
CHECKOUT = 'checkout'

_CURRENT = db.text('superseded_at IS NULL')


class CheckinRecord(BaseModel):
    """Location evidence captured when an agent starts or finishes a job.

    A rejected verification supersedes the checkout record so the agent can
    check out again; at most one current record exists per type.
    """
    __tablename__ = 'agent_checkins'

    assignment_id = db.Column(db.String(36), db.ForeignKey('job_assignments.id'), nullable=False)
    agent_id = db.Column(db.String(36), nullable=False)
    type = db.Column(db.String(20), nullable=False)

    lat = db.Column(db.Float, nullable=True)
    lng = db.Column(db.Float, nullable=True)
    location_verified = db.Column(db.Boolean, nullable=False, default=False)
    distance_from_job_meters = db.Column(db.Integer, nullable=True)

    survey = db.Column(db.JSON, nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False)
    superseded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index(
            'uq_agent_checkins_current', 'assignment_id', 'type', unique=True,
            sqlite_where=_CURRENT, postgresql_where=_CURRENT,
        ),
        db.CheckConstraint("type IN ('checkin', 'checkout')", name='ck_agent_checkins_type'),
    )

    def __repr__(self):
        return f'<CheckinRecord {self.type} {self.assignment_id}>'
