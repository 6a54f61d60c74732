"""Agent earnings"""
from fieldops import db
from .base import BaseModel

PENDING = 'pending'
AVAILABLE = 'available'
PAID = 'paid'


class AgentEarning(BaseModel):
    """Money owed to an agent for one assignment.

    Created at checkout, released for payout after verification plus the hold
    period, and marked paid once the payment collaborator is told to pay.
    """
    __tablename__ = 'agent_earnings'

    agent_id = db.Column(db.String(36), db.ForeignKey('agent_profiles.id'), nullable=False, index=True)
    assignment_id = db.Column(db.String(36), db.ForeignKey('job_assignments.id'), nullable=False, unique=True)
    job_id = db.Column(db.String(36), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PENDING)
    available_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint('amount_cents >= 0', name='ck_agent_earnings_amount'),
    )

    def __repr__(self):
        return f'<AgentEarning {self.amount_cents} {self.status}>'
