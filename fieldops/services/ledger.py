"""
Assignment ledger: the single source of truth for who is doing which job and
where that job is in its lifecycle.

    assigned -> in_progress -> pending_verification -> verified -> paid -> completed
    pending_verification -> in_progress   (admin rejects the proof)
    assigned | in_progress -> cancelled

Every transition is a compare-and-set on the current status, so two racing
writers never both succeed and a refused transition leaves the row untouched.
The job row's ``status`` mirrors the active assignment.
"""

import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from fieldops import db, geo, payouts
from fieldops.actors import ADMIN, require_admin
from fieldops.errors import (
    AlreadyAssigned,
    AlreadyCheckedIn,
    InvalidStatus,
    JobNotFound,
    NotYourJob,
    ProofIncomplete,
    TooFarFromJob,
    Unauthorized,
    ValidationError,
    storage_guard,
)
from fieldops.events import JOB_ASSIGNED, JOB_COMPLETED, JOB_STARTED, PAYOUT_READY, VERIFICATION_REJECTED
from fieldops.models import AgentEarning, AgentProfile, AutoAssignmentOffer, CheckinRecord, Job, JobAssignment, utcnow
from fieldops.models import agent as agent_model
from fieldops.models import earning as earning_model
from fieldops.models import job as job_model
from fieldops.models import offer as offer_model
from fieldops.models.checkin import CHECKIN, CHECKOUT
from fieldops.models.job_assignment import (
    ASSIGNED,
    ASSIGNED_BY_ADMIN,
    ASSIGNED_BY_AGENT,
    CANCELLABLE_STATUSES,
    CANCELLED,
    COMPLETED,
    IN_PROGRESS,
    PAID,
    PENDING_VERIFICATION,
    VERIFIED,
)
from fieldops.tiers import payout_percent_for

logger = logging.getLogger(__name__)


class AssignmentLedger:
    def __init__(self, proofs, events, checkin_radius_meters=100.0, earnings_hold_hours=2, clock=utcnow):
        self.proofs = proofs
        self.events = events
        self.checkin_radius_meters = checkin_radius_meters
        self.earnings_hold_hours = earnings_hold_hours
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, assignment_id):
        assignment = db.session.get(JobAssignment, assignment_id)
        if not assignment:
            raise JobNotFound("Assignment not found")
        return assignment

    def active_for_job(self, job_id):
        return JobAssignment.query.filter(
            JobAssignment.job_id == job_id,
            JobAssignment.status != CANCELLED,
        ).first()

    def for_agent(self, agent_id, statuses=None):
        query = JobAssignment.query.filter(JobAssignment.agent_id == agent_id)
        if statuses:
            query = query.filter(JobAssignment.status.in_(statuses))
        return query.order_by(JobAssignment.assigned_at.desc()).all()

    def current_checkin(self, assignment_id, checkin_type):
        return CheckinRecord.query.filter(
            CheckinRecord.assignment_id == assignment_id,
            CheckinRecord.type == checkin_type,
            CheckinRecord.superseded_at.is_(None),
        ).first()

    def _owned(self, assignment_id, agent_id):
        assignment = self.get(assignment_id)
        if assignment.agent_id != agent_id:
            raise NotYourJob()
        return assignment

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    @storage_guard
    def claim(self, job_id, agent_id, assigned_by=ASSIGNED_BY_AGENT, auto_assigned=False, commit=True):
        """Bind ``agent_id`` to ``job_id``.

        With ``commit=False`` the caller owns the transaction and the
        ``job_assigned`` event; an ``AlreadyAssigned`` still rolls back.
        """
        if assigned_by not in (ASSIGNED_BY_AGENT, ASSIGNED_BY_ADMIN):
            raise ValidationError("assigned_by must be 'agent' or 'admin'")

        job = db.session.get(Job, job_id)
        if not job:
            raise JobNotFound()
        # Completed jobs fall through; their assignment makes the unique index refuse the claim
        if job.status == job_model.CANCELLED:
            raise InvalidStatus("Job is no longer open", current_status=job.status)

        agent = db.session.get(AgentProfile, agent_id)
        if not agent or agent.status != agent_model.APPROVED:
            raise Unauthorized("Agent approval required")

        try:
            split = payouts.split(
                job.total_price_cents,
                job.labor_price_cents,
                job.materials_cost_cents,
                payout_percent_for(agent.tier),
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        assignment = JobAssignment(
            job_id=job.id,
            agent_id=agent.id,
            assigned_by=assigned_by,
            auto_assigned=auto_assigned,
            status=ASSIGNED,
            job_price_cents=job.total_price_cents,
            agent_payout_cents=split.agent_payout_cents,
            platform_fee_cents=split.platform_fee_cents,
            tier_at_assignment=agent.tier,
            assigned_at=self.clock(),
        )
        db.session.add(assignment)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            logger.info("Claim of job %s by agent %s lost: already assigned", job_id, agent_id)
            raise AlreadyAssigned() from exc

        job.status = job_model.ASSIGNED

        if commit:
            db.session.commit()
            self.announce_assignment(assignment)

        logger.info(
            "Job %s assigned to agent %s (%s, payout %d cents)",
            job_id, agent_id, assigned_by, split.agent_payout_cents,
        )
        return assignment

    def announce_assignment(self, assignment):
        self.events.emit(
            JOB_ASSIGNED,
            assignment_id=assignment.id,
            job_id=assignment.job_id,
            agent_id=assignment.agent_id,
            auto_assigned=assignment.auto_assigned,
            agent_payout_cents=assignment.agent_payout_cents,
        )

    # ------------------------------------------------------------------
    # Field work
    # ------------------------------------------------------------------

    @storage_guard
    def check_in(self, assignment_id, agent_id, lat, lng):
        """Start work. Returns a ``GeoCheck``; refuses when outside the radius."""
        assignment = self._owned(assignment_id, agent_id)
        if assignment.status != ASSIGNED:
            raise InvalidStatus("Job already started or completed", current_status=assignment.status)
        if self.current_checkin(assignment.id, CHECKIN):
            raise AlreadyCheckedIn()

        job = assignment.job
        result = geo.check_location((lat, lng), job.location, self.checkin_radius_meters)
        if not result.location_verified:
            logger.info(
                "Check-in refused for assignment %s: %sm from job (max %sm)",
                assignment.id, result.distance_meters, self.checkin_radius_meters,
            )
            raise TooFarFromJob(result.distance_meters, self.checkin_radius_meters)

        now = self.clock()
        if not self._compare_and_set(assignment.id, (ASSIGNED,), status=IN_PROGRESS, started_at=now):
            db.session.rollback()
            if self.current_checkin(assignment.id, CHECKIN):
                raise AlreadyCheckedIn()
            raise InvalidStatus("Job already started or completed", current_status=self._status_of(assignment.id))

        db.session.add(CheckinRecord(
            assignment_id=assignment.id,
            agent_id=agent_id,
            type=CHECKIN,
            lat=lat,
            lng=lng,
            location_verified=result.location_verified,
            distance_from_job_meters=result.distance_meters,
            recorded_at=now,
        ))
        job.status = job_model.IN_PROGRESS
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise AlreadyCheckedIn() from exc

        self.events.emit(JOB_STARTED, assignment_id=assignment.id, job_id=job.id, agent_id=agent_id)
        return result

    @storage_guard
    def check_out(self, assignment_id, agent_id, lat=None, lng=None, survey=None):
        """Finish work and hand the job to verification.

        Distance is recorded but never blocks checkout; missing proof does.
        """
        assignment = self._owned(assignment_id, agent_id)
        if assignment.status != IN_PROGRESS:
            raise InvalidStatus("Must check in first", current_status=assignment.status)
        missing = self.proofs.missing(assignment.id)
        if missing:
            raise ProofIncomplete(missing=missing)
        if self.current_checkout_exists(assignment.id):
            raise InvalidStatus("Already checked out", current_status=assignment.status)

        job = assignment.job
        result = geo.check_location((lat, lng), job.location, self.checkin_radius_meters)
        if not result.location_verified:
            logger.warning(
                "Checkout for assignment %s recorded %sm from job",
                assignment.id, result.distance_meters,
            )

        now = self.clock()
        self._transition(assignment, (IN_PROGRESS,), PENDING_VERIFICATION, checked_out_at=now)

        db.session.add(CheckinRecord(
            assignment_id=assignment.id,
            agent_id=agent_id,
            type=CHECKOUT,
            lat=lat,
            lng=lng,
            location_verified=result.location_verified,
            distance_from_job_meters=result.distance_meters,
            survey=survey,
            recorded_at=now,
        ))
        if not AgentEarning.query.filter_by(assignment_id=assignment.id).first():
            db.session.add(AgentEarning(
                agent_id=agent_id,
                assignment_id=assignment.id,
                job_id=job.id,
                amount_cents=assignment.agent_payout_cents,
                status=earning_model.PENDING,
            ))
        job.status = job_model.PENDING_VERIFICATION
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise InvalidStatus("Already checked out", current_status=self._status_of(assignment.id)) from exc

        return result

    def current_checkout_exists(self, assignment_id):
        return self.current_checkin(assignment_id, CHECKOUT) is not None

    # ------------------------------------------------------------------
    # Verification and payout
    # ------------------------------------------------------------------

    @storage_guard
    def verify(self, assignment_id, admin, notes=None):
        require_admin(admin)
        assignment = self.get(assignment_id)
        self._require_status(assignment, (PENDING_VERIFICATION,), "Job is not awaiting verification")

        now = self.clock()
        self._transition(
            assignment, (PENDING_VERIFICATION,), VERIFIED,
            verified_at=now, verified_by=admin.id, verification_notes=notes,
        )
        AgentEarning.query.filter_by(assignment_id=assignment.id).update(
            {
                'status': earning_model.AVAILABLE,
                'available_at': now + timedelta(hours=self.earnings_hold_hours),
            },
            synchronize_session=False,
        )
        self._mirror(assignment.job_id, job_model.VERIFIED)
        db.session.commit()
        logger.info("Assignment %s verified by %s", assignment.id, admin.id)
        return assignment

    @storage_guard
    def reject(self, assignment_id, admin, notes=None):
        """Send the job back to the agent; proofs stay, checkout must be redone."""
        require_admin(admin)
        assignment = self.get(assignment_id)
        self._require_status(assignment, (PENDING_VERIFICATION,), "Job is not awaiting verification")

        now = self.clock()
        self._transition(
            assignment, (PENDING_VERIFICATION,), IN_PROGRESS,
            rejected_at=now, rejected_by=admin.id, rejection_notes=notes,
        )
        CheckinRecord.query.filter(
            CheckinRecord.assignment_id == assignment.id,
            CheckinRecord.type == CHECKOUT,
            CheckinRecord.superseded_at.is_(None),
        ).update({'superseded_at': now}, synchronize_session=False)
        self._mirror(assignment.job_id, job_model.IN_PROGRESS)
        db.session.commit()

        self.events.emit(
            VERIFICATION_REJECTED,
            assignment_id=assignment.id,
            job_id=assignment.job_id,
            agent_id=assignment.agent_id,
            notes=notes,
        )
        logger.info("Assignment %s rejected by %s", assignment.id, admin.id)
        return assignment

    @storage_guard
    def mark_paid(self, assignment_id, actor=None):
        if actor is not None:
            require_admin(actor)
        assignment = self.get(assignment_id)
        self._require_status(assignment, (VERIFIED,), "Job must be verified before payout")

        now = self.clock()
        self._transition(assignment, (VERIFIED,), PAID, paid_at=now)
        AgentEarning.query.filter_by(assignment_id=assignment.id).update(
            {'status': earning_model.PAID, 'paid_at': now},
            synchronize_session=False,
        )
        self._mirror(assignment.job_id, job_model.PAID)
        db.session.commit()

        agent = db.session.get(AgentProfile, assignment.agent_id)
        self.events.emit(
            PAYOUT_READY,
            assignment_id=assignment.id,
            job_id=assignment.job_id,
            agent_id=assignment.agent_id,
            agent_payout_cents=assignment.agent_payout_cents,
            payout_account_id=agent.payout_account_id if agent else None,
        )
        return assignment

    @storage_guard
    def complete(self, assignment_id, actor=None):
        if actor is not None:
            require_admin(actor)
        assignment = self.get(assignment_id)
        self._require_status(assignment, (PAID,), "Job must be paid before completion")

        self._transition(assignment, (PAID,), COMPLETED, completed_at=self.clock())
        self._mirror(assignment.job_id, job_model.COMPLETED)
        db.session.commit()

        self.events.emit(
            JOB_COMPLETED,
            assignment_id=assignment.id,
            job_id=assignment.job_id,
            agent_id=assignment.agent_id,
        )
        return assignment

    # ------------------------------------------------------------------
    # Cancellation and repricing
    # ------------------------------------------------------------------

    @storage_guard
    def cancel(self, assignment_id, actor, reason=None, commit=True):
        """Release the job. Agents may only cancel their own assignment."""
        assignment = self.get(assignment_id)
        if actor is None:
            raise Unauthorized()
        if actor.role != ADMIN and assignment.agent_id != actor.id:
            raise NotYourJob()
        self._require_status(assignment, CANCELLABLE_STATUSES, "Job can no longer be cancelled")

        self._transition(
            assignment, CANCELLABLE_STATUSES, CANCELLED,
            cancelled_at=self.clock(), cancellation_reason=reason,
        )
        # The offer that produced this assignment no longer holds the job
        db.session.query(AutoAssignmentOffer).filter_by(
            job_id=assignment.job_id, status=offer_model.ACCEPTED,
        ).update({'status': offer_model.EXPIRED}, synchronize_session=False)
        job = db.session.get(Job, assignment.job_id)
        job.status = job_model.PENDING
        job.auto_assignment_status = job_model.AUTO_PENDING
        if commit:
            db.session.commit()
        logger.info("Assignment %s cancelled by %s %s", assignment.id, actor.role, actor.id)
        return assignment

    @storage_guard
    def reprice_for_agent(self, agent_id):
        """Recompute the frozen split for assignments the agent has not started."""
        agent = db.session.get(AgentProfile, agent_id)
        if not agent:
            return 0
        percent = payout_percent_for(agent.tier)
        count = 0
        for assignment in JobAssignment.query.filter_by(agent_id=agent_id, status=ASSIGNED).all():
            job = assignment.job
            split = payouts.split(
                job.total_price_cents, job.labor_price_cents, job.materials_cost_cents, percent,
            )
            if self._compare_and_set(
                assignment.id, (ASSIGNED,),
                agent_payout_cents=split.agent_payout_cents,
                platform_fee_cents=split.platform_fee_cents,
                tier_at_assignment=agent.tier,
            ):
                count += 1
        db.session.commit()
        if count:
            logger.info("Repriced %d assignments for agent %s at tier %s", count, agent_id, agent.tier)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _compare_and_set(self, assignment_id, allowed_from, **values):
        values['updated_at'] = self.clock()
        rows = (
            db.session.query(JobAssignment)
            .filter(JobAssignment.id == assignment_id, JobAssignment.status.in_(allowed_from))
            .update(values, synchronize_session=False)
        )
        return rows == 1

    def _transition(self, assignment, allowed_from, to_status, **values):
        if not self._compare_and_set(assignment.id, allowed_from, status=to_status, **values):
            db.session.rollback()
            raise InvalidStatus(
                "Cannot move to {}".format(to_status),
                current_status=self._status_of(assignment.id),
            )
        db.session.expire(assignment)

    def _require_status(self, assignment, allowed, message):
        if assignment.status not in allowed:
            raise InvalidStatus(message, current_status=assignment.status)

    def _status_of(self, assignment_id):
        row = db.session.query(JobAssignment.status).filter_by(id=assignment_id).first()
        return row[0] if row else None

    def _mirror(self, job_id, status):
        db.session.query(Job).filter_by(id=job_id).update(
            {'status': status, 'updated_at': self.clock()},
            synchronize_session=False,
        )
