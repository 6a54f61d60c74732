"""Proof of work photos"""
from fieldops import db
from .base import BaseModel

BOX = 'box'
FINISHED = 'finished'
PROOF_TYPES = (BOX, FINISHED)


class ProofRecord(BaseModel):
    __tablename__ = 'proof_of_work'

    assignment_id = db.Column(db.String(36), db.ForeignKey('job_assignments.id'), nullable=False)
    agent_id = db.Column(db.String(36), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    photo_url = db.Column(db.String(2048), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('assignment_id', 'type', name='uq_proof_of_work_assignment_type'),
    )

    def __repr__(self):
        return f'<ProofRecord {self.type} {self.assignment_id}>'
