"""Job assignment model"""
from fieldops import db
from .base import BaseModel

ASSIGNED = 'assigned'
IN_PROGRESS = 'in_progress'
PENDING_VERIFICATION = 'pending_verification'
VERIFIED = 'verified'
PAID = 'paid'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

ASSIGNMENT_STATUSES = (
    ASSIGNED, IN_PROGRESS, PENDING_VERIFICATION, VERIFIED, PAID, COMPLETED, CANCELLED,
)
CANCELLABLE_STATUSES = (ASSIGNED, IN_PROGRESS)

ASSIGNED_BY_AGENT = 'agent'
ASSIGNED_BY_ADMIN = 'admin'

_ACTIVE = db.text("status != 'cancelled'")


class JobAssignment(BaseModel):
    """
    Binding of one agent to one job.

    At most one non-cancelled assignment may exist per job; the partial
    unique index is what settles concurrent claims.
    """
    __tablename__ = 'job_assignments'

    job_id = db.Column(db.String(36), db.ForeignKey('jobs.id'), nullable=False)
    agent_id = db.Column(db.String(36), db.ForeignKey('agent_profiles.id'), nullable=False)

    assigned_by = db.Column(db.String(20), nullable=False, default=ASSIGNED_BY_AGENT)
    auto_assigned = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(30), nullable=False, default=ASSIGNED)

    # Split frozen at assignment time
    job_price_cents = db.Column(db.Integer, nullable=False)
    agent_payout_cents = db.Column(db.Integer, nullable=False)
    platform_fee_cents = db.Column(db.Integer, nullable=False)
    tier_at_assignment = db.Column(db.String(20), nullable=False)

    # Lifecycle timestamps
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    checked_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    verified_by = db.Column(db.String(36), nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(36), nullable=True)
    rejection_notes = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.Index(
            'uq_job_assignments_active_job', 'job_id', unique=True,
            sqlite_where=_ACTIVE, postgresql_where=_ACTIVE,
        ),
        db.Index('ix_job_assignments_agent_status', 'agent_id', 'status'),
        db.CheckConstraint(
            'agent_payout_cents + platform_fee_cents = job_price_cents',
            name='ck_job_assignments_split_reconciles',
        ),
    )

    job = db.relationship('Job', back_populates='assignments')
    agent = db.relationship('AgentProfile')

    def __repr__(self):
        return f'<JobAssignment {self.id} job={self.job_id} - {self.status}>'

    @property
    def is_active(self):
        return self.status != CANCELLED
