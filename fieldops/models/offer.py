"""Auto-assignment offer model"""
from fieldops import db
from .base import BaseModel, as_utc

PENDING = 'pending'
ACCEPTED = 'accepted'
DECLINED = 'declined'
EXPIRED = 'expired'

OFFER_STATUSES = (PENDING, ACCEPTED, DECLINED, EXPIRED)

# Priority levels, lowest goes first
PRIORITY_REFERRAL = 1
PRIORITY_TOP_RATED = 2
PRIORITY_STANDARD = 3


class AutoAssignmentOffer(BaseModel):
    """A time-boxed invitation for one agent to take one job"""
    __tablename__ = 'auto_assignment_offers'

    job_id = db.Column(db.String(36), db.ForeignKey('jobs.id'), nullable=False)
    agent_id = db.Column(db.String(36), db.ForeignKey('agent_profiles.id'), nullable=False)
    priority_level = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PENDING)

    offered_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint('job_id', 'agent_id', name='uq_offers_job_agent'),
        db.Index('ix_offers_job_status', 'job_id', 'status'),
        db.Index('ix_offers_status_expires', 'status', 'expires_at'),
        db.CheckConstraint('priority_level BETWEEN 1 AND 3', name='ck_offers_priority_level'),
    )

    job = db.relationship('Job', back_populates='offers')

    def __repr__(self):
        return f'<AutoAssignmentOffer {self.id} job={self.job_id} agent={self.agent_id} - {self.status}>'

    def is_past_deadline(self, now):
        return as_utc(self.expires_at) <= now
