"""Job model"""
from fieldops import db
from .base import BaseModel

# Status mirror written by the engine
PENDING = 'pending'
ASSIGNED = 'assigned'
IN_PROGRESS = 'in_progress'
PENDING_VERIFICATION = 'pending_verification'
VERIFIED = 'verified'
PAID = 'paid'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

# Offer pipeline projection
AUTO_PENDING = 'pending'
AUTO_OFFERED = 'offered'
AUTO_ACCEPTED = 'accepted'
AUTO_MANUAL = 'manual'


class Job(BaseModel):
    """
    Job model - a booked home-service request.

    Owned by the booking collaborator; the engine only writes ``status`` and
    ``auto_assignment_status``.
    """
    __tablename__ = 'jobs'

    customer_id = db.Column(db.String(36), nullable=True, index=True)
    service_type = db.Column(db.String(100), nullable=False)

    # Price breakdown in cents
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    labor_price_cents = db.Column(db.Integer, nullable=False, default=0)
    materials_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Job site, optional
    lat = db.Column(db.Float, nullable=True)
    lng = db.Column(db.Float, nullable=True)

    # Referring agent gets first refusal
    preferred_agent_id = db.Column(db.String(36), nullable=True)

    status = db.Column(db.String(30), nullable=False, default=PENDING)
    auto_assignment_status = db.Column(db.String(20), nullable=False, default=AUTO_PENDING)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            'total_price_cents >= 0 AND labor_price_cents >= 0 AND materials_cost_cents >= 0',
            name='ck_jobs_price_non_negative',
        ),
        db.CheckConstraint(
            'labor_price_cents + materials_cost_cents <= total_price_cents',
            name='ck_jobs_breakdown_within_total',
        ),
        db.Index('ix_jobs_status', 'status'),
        db.Index('ix_jobs_auto_assignment_status', 'auto_assignment_status'),
    )

    assignments = db.relationship('JobAssignment', back_populates='job', lazy='dynamic')
    offers = db.relationship('AutoAssignmentOffer', back_populates='job', lazy='dynamic')

    def __repr__(self):
        return f'<Job {self.id} {self.service_type} - {self.status}>'

    @property
    def location(self):
        if self.lat is None or self.lng is None:
            return None
        return (self.lat, self.lng)
