"""
Proof-of-work photo gate.

An agent may not check out until both a ``box`` and a ``finished`` photo
exist for the assignment. Re-uploading a type replaces the earlier photo.
"""

import logging

from sqlalchemy.exc import IntegrityError

from fieldops import db
from fieldops.errors import InvalidStatus, JobNotFound, NotYourJob, ValidationError, storage_guard
from fieldops.models import JobAssignment, ProofRecord, utcnow
from fieldops.models.job_assignment import ASSIGNED, IN_PROGRESS
from fieldops.models.proof import PROOF_TYPES

logger = logging.getLogger(__name__)

UPLOADABLE_STATUSES = (ASSIGNED, IN_PROGRESS)


class ProofGate:
    def __init__(self, clock=utcnow):
        self.clock = clock

    @storage_guard
    def submit(self, assignment_id, agent_id, proof_type, photo_url, notes=None):
        """Store (or replace) the photo of ``proof_type`` for an assignment."""
        if proof_type not in PROOF_TYPES:
            raise ValidationError(
                "Proof type must be one of: {}".format(", ".join(PROOF_TYPES)),
                field="type",
            )
        if not photo_url or not isinstance(photo_url, str):
            raise ValidationError("Photo URL required", field="photo_url")

        assignment = db.session.get(JobAssignment, assignment_id)
        if not assignment:
            raise JobNotFound()
        if assignment.agent_id != agent_id:
            raise NotYourJob()
        if assignment.status not in UPLOADABLE_STATUSES:
            raise InvalidStatus(
                "Proof can only be uploaded before checkout",
                current_status=assignment.status,
            )

        try:
            record = self._upsert(assignment, proof_type, photo_url, notes)
            db.session.commit()
        except IntegrityError:
            # Lost an insert race for the same type; the row exists now.
            db.session.rollback()
            record = self._upsert(assignment, proof_type, photo_url, notes)
            db.session.commit()

        logger.info("Proof %s stored for assignment %s", proof_type, assignment_id)
        return record

    def _upsert(self, assignment, proof_type, photo_url, notes):
        record = ProofRecord.query.filter_by(assignment_id=assignment.id, type=proof_type).first()
        if record is None:
            record = ProofRecord(
                assignment_id=assignment.id,
                agent_id=assignment.agent_id,
                type=proof_type,
            )
            db.session.add(record)
        record.photo_url = photo_url
        record.notes = notes
        record.uploaded_at = self.clock()
        db.session.flush()
        return record

    def uploaded_types(self, assignment_id):
        rows = db.session.query(ProofRecord.type).filter_by(assignment_id=assignment_id).all()
        return {row[0] for row in rows}

    def missing(self, assignment_id):
        present = self.uploaded_types(assignment_id)
        return [t for t in PROOF_TYPES if t not in present]

    def is_complete(self, assignment_id):
        return not self.missing(assignment_id)

    def list_for(self, assignment_id):
        return (
            ProofRecord.query.filter_by(assignment_id=assignment_id)
            .order_by(ProofRecord.uploaded_at)
            .all()
        )
