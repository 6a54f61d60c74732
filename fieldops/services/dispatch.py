"""
Dispatch service: the engine's public surface.

Wires the proof gate, assignment ledger and offer broker together and takes
the inbound collaborator events (job created or cancelled, agent stats
changed). Blueprints call this and nothing below it.
"""

import logging

from fieldops import db
from fieldops.actors import AGENT, SYSTEM, require_admin
from fieldops.errors import InvalidStatus, JobNotFound, NotYourJob, Unauthorized, ValidationError, storage_guard
from fieldops.models import AgentProfile, AutoAssignmentOffer, CheckinRecord, Job, JobAssignment, utcnow
from fieldops.models import agent as agent_model
from fieldops.models import job as job_model
from fieldops.models.agent import AGENT_STATUSES
from fieldops.models.checkin import CHECKIN, CHECKOUT
from fieldops.models.job_assignment import ASSIGNED_BY_ADMIN, ASSIGNED_BY_AGENT, CANCELLED
from fieldops.payouts import split
from fieldops.services.ledger import AssignmentLedger
from fieldops.services.offers import OfferBroker
from fieldops.services.proofs import ProofGate
from fieldops.tiers import AgentStatsChanged, apply_stats_change, payout_percent_for

logger = logging.getLogger(__name__)


def _cents(data, key, default=None):
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("{} must be an integer number of cents".format(key), field=key)
    if value < 0:
        raise ValidationError("{} must not be negative".format(key), field=key)
    return value


def _coordinate(data, key):
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("{} must be a number".format(key), field=key)
    return float(value)


def _checked_stats(total_jobs, rating):
    try:
        rating = float(rating)
        total_jobs = int(total_jobs)
    except (TypeError, ValueError) as exc:
        raise ValidationError("total_jobs and rating must be numbers") from exc
    if total_jobs < 0 or not 0 <= rating <= 5:
        raise ValidationError("Stats out of range", total_jobs=total_jobs, rating=rating)
    return total_jobs, rating


class DispatchService:
    def __init__(self, events, clock=utcnow, checkin_radius_meters=100.0, offer_window_minutes=10,
                 high_rating_threshold=4.5, default_service_area_miles=25.0, earnings_hold_hours=2):
        self.events = events
        self.clock = clock
        self.proofs = ProofGate(clock=clock)
        self.ledger = AssignmentLedger(
            self.proofs, events,
            checkin_radius_meters=checkin_radius_meters,
            earnings_hold_hours=earnings_hold_hours,
            clock=clock,
        )
        self.offers = OfferBroker(
            self.ledger, events,
            offer_window_minutes=offer_window_minutes,
            high_rating_threshold=high_rating_threshold,
            default_service_area_miles=default_service_area_miles,
            clock=clock,
        )

    @classmethod
    def from_config(cls, config, events, clock=utcnow):
        return cls(
            events,
            clock=clock,
            checkin_radius_meters=config['CHECKIN_RADIUS_METERS'],
            offer_window_minutes=config['OFFER_WINDOW_MINUTES'],
            high_rating_threshold=config['HIGH_RATING_THRESHOLD'],
            default_service_area_miles=config['DEFAULT_SERVICE_AREA_MILES'],
            earnings_hold_hours=config['EARNINGS_HOLD_HOURS'],
        )

    # ==================================================================
    # Booking collaborator
    # ==================================================================

    @storage_guard
    def job_created(self, data, auto_dispatch=True):
        """Register a booked job and start offering it."""
        service_type = (data.get('service_type') or '').strip()
        if not service_type:
            raise ValidationError("service_type is required", field="service_type")

        total = _cents(data, 'total_price_cents')
        if total is None:
            raise ValidationError("total_price_cents is required", field="total_price_cents")
        materials = _cents(data, 'materials_cost_cents', 0)
        labor = _cents(data, 'labor_price_cents')
        if labor is None:
            labor = total - materials
        if labor < 0 or labor + materials > total:
            raise ValidationError(
                "Labor plus materials exceeds total price",
                total_price_cents=total, labor_price_cents=labor, materials_cost_cents=materials,
            )

        lat, lng = _coordinate(data, 'lat'), _coordinate(data, 'lng')
        job_id = data.get('id')
        if job_id and db.session.get(Job, job_id):
            raise ValidationError("Job already exists", job_id=job_id)

        job = Job(
            customer_id=data.get('customer_id'),
            service_type=service_type,
            total_price_cents=total,
            labor_price_cents=labor,
            materials_cost_cents=materials,
            lat=lat,
            lng=lng,
            preferred_agent_id=data.get('preferred_agent_id'),
            status=job_model.PENDING,
            auto_assignment_status=job_model.AUTO_PENDING,
        )
        if job_id:
            job.id = job_id
        db.session.add(job)
        db.session.commit()
        logger.info("Job %s created (%s, %d cents)", job.id, service_type, total)

        if auto_dispatch:
            self.offers.create_offers(job)
        return job

    @storage_guard
    def job_cancelled(self, job_id, reason=None):
        """The customer cancelled: release any agent and withdraw all offers."""
        job = db.session.get(Job, job_id)
        if not job:
            raise JobNotFound()
        if job.status == job_model.COMPLETED:
            raise InvalidStatus("Completed jobs cannot be cancelled", current_status=job.status)
        if job.status == job_model.CANCELLED:
            return job

        assignment = self.ledger.active_for_job(job.id)
        if assignment:
            self.ledger.cancel(
                assignment.id, SYSTEM, reason=reason or 'job_cancelled', commit=False,
            )
        self.offers.expire_for_job(job.id)

        job = db.session.get(Job, job_id)
        job.status = job_model.CANCELLED
        job.cancelled_at = self.clock()
        job.cancellation_reason = reason
        db.session.commit()
        logger.info("Job %s cancelled by booking", job_id)
        return job

    # ==================================================================
    # Profile collaborator
    # ==================================================================

    @storage_guard
    def upsert_agent(self, agent_id, data):
        """Create or update a profile; stats go through ``agent_stats_changed``."""
        if 'status' in data and data['status'] not in AGENT_STATUSES:
            raise ValidationError("Unknown agent status", field="status")
        coordinates = {key: _coordinate(data, key) for key in ('home_lat', 'home_lng') if key in data}
        miles = data.get('service_area_miles')
        if miles is not None and (isinstance(miles, bool) or not isinstance(miles, (int, float)) or miles <= 0):
            raise ValidationError("service_area_miles must be a positive number", field="service_area_miles")
        skills = data.get('skills')
        if skills is not None and not isinstance(skills, list):
            raise ValidationError("skills must be a list of service ids", field="skills")

        agent = db.session.get(AgentProfile, agent_id)
        stats = None
        if 'total_jobs' in data or 'rating' in data:
            stats = _checked_stats(
                data.get('total_jobs', agent.total_jobs if agent else 0),
                data.get('rating', agent.rating if agent else 0),
            )

        if agent is None:
            agent = AgentProfile(id=agent_id)
            db.session.add(agent)

        for key in ('status', 'name', 'payout_account_id', 'service_area_miles'):
            if key in data:
                setattr(agent, key, data[key])
        for key, value in coordinates.items():
            setattr(agent, key, value)
        if 'auto_booking_enabled' in data:
            agent.enable_auto_booking(bool(data['auto_booking_enabled']))
        if 'skills' in data:
            agent.set_skills(skills or [])
        db.session.commit()

        if stats is not None:
            self.agent_stats_changed(AgentStatsChanged(agent_id, *stats))
        return agent

    @storage_guard
    def agent_stats_changed(self, event):
        """Re-derive the agent's tier and reprice work not yet started."""
        agent = db.session.get(AgentProfile, event.agent_id)
        if not agent:
            raise ValidationError("Unknown agent", agent_id=event.agent_id)
        total_jobs, rating = _checked_stats(event.total_jobs, event.rating)

        old_tier, new_tier = apply_stats_change(agent, AgentStatsChanged(agent.id, total_jobs, rating))
        db.session.commit()
        if old_tier != new_tier:
            logger.info("Agent %s moved from %s to %s", agent.id, old_tier, new_tier)
            self.ledger.reprice_for_agent(agent.id)
        return old_tier, new_tier

    # ==================================================================
    # Agent surface
    # ==================================================================

    def _approved_agent(self, agent_id):
        agent = db.session.get(AgentProfile, agent_id)
        if not agent or agent.status != agent_model.APPROVED:
            raise Unauthorized("Agent approval required")
        return agent

    def open_jobs(self, agent_id):
        """Jobs in the manual-claim pool this agent could take, with their payout."""
        agent = self._approved_agent(agent_id)
        jobs = (
            Job.query.filter(
                Job.status == job_model.PENDING,
                Job.auto_assignment_status == job_model.AUTO_MANUAL,
            )
            .order_by(Job.created_at)
            .all()
        )
        percent = payout_percent_for(agent.tier)
        results = []
        for job in jobs:
            if not agent.has_skill_for(job.service_type):
                continue
            data = job.to_dict()
            data['agent_payout_cents'] = split(
                job.total_price_cents, job.labor_price_cents, job.materials_cost_cents, percent,
            ).agent_payout_cents
            results.append(data)
        return results

    def pending_offers(self, agent_id):
        return self.offers.pending_for_agent(agent_id)

    def respond_to_offer(self, offer_id, agent_id, decision):
        return self.offers.respond(offer_id, agent_id, decision)

    @storage_guard
    def claim_job(self, job_id, agent_id):
        """Manual claim from the open pool; first claimer wins."""
        return self._assign(job_id, agent_id, ASSIGNED_BY_AGENT)

    @storage_guard
    def assign_job(self, admin, job_id, agent_id):
        require_admin(admin)
        return self._assign(job_id, agent_id, ASSIGNED_BY_ADMIN)

    def _assign(self, job_id, agent_id, assigned_by):
        assignment = self.ledger.claim(job_id, agent_id, assigned_by=assigned_by, commit=False)
        self.offers.expire_for_job(job_id)
        db.session.query(Job).filter_by(id=job_id).update(
            {'auto_assignment_status': job_model.AUTO_ACCEPTED}, synchronize_session=False,
        )
        db.session.commit()
        self.ledger.announce_assignment(assignment)
        return assignment

    def my_assignments(self, agent_id, status=None):
        statuses = [status] if status else None
        return self.ledger.for_agent(agent_id, statuses)

    def assignment_for_agent(self, assignment_id, agent_id):
        assignment = self.ledger.get(assignment_id)
        if assignment.agent_id != agent_id:
            raise NotYourJob()
        return assignment

    def check_in(self, assignment_id, agent_id, lat, lng):
        return self.ledger.check_in(assignment_id, agent_id, lat, lng)

    def submit_proof(self, assignment_id, agent_id, proof_type, photo_url, notes=None):
        return self.proofs.submit(assignment_id, agent_id, proof_type, photo_url, notes)

    def proofs_for(self, assignment_id, agent_id):
        self.assignment_for_agent(assignment_id, agent_id)
        return self.proofs.list_for(assignment_id)

    def check_out(self, assignment_id, agent_id, lat=None, lng=None, survey=None):
        return self.ledger.check_out(assignment_id, agent_id, lat, lng, survey)

    @storage_guard
    def cancel_assignment(self, assignment_id, actor, reason=None):
        """Cancel and put the job back up for offers, skipping the cancelling agent."""
        assignment = self.ledger.cancel(assignment_id, actor, reason=reason)
        job = db.session.get(Job, assignment.job_id)
        exclude = {assignment.agent_id} if actor.role == AGENT else set()
        self.offers.create_offers(job, exclude=exclude)
        return assignment

    # ==================================================================
    # Admin surface
    # ==================================================================

    def verify(self, assignment_id, admin, notes=None):
        return self.ledger.verify(assignment_id, admin, notes)

    def reject(self, assignment_id, admin, notes=None):
        return self.ledger.reject(assignment_id, admin, notes)

    def mark_paid(self, assignment_id, actor=None):
        return self.ledger.mark_paid(assignment_id, actor)

    def complete(self, assignment_id, actor=None):
        return self.ledger.complete(assignment_id, actor)

    def verification_details(self, assignment_id, admin):
        """Everything an admin needs to judge a checkout."""
        require_admin(admin)
        assignment = self.ledger.get(assignment_id)
        checkins = (
            CheckinRecord.query.filter_by(assignment_id=assignment.id)
            .order_by(CheckinRecord.recorded_at)
            .all()
        )
        current_checkout = self.ledger.current_checkin(assignment.id, CHECKOUT)
        return {
            'assignment': assignment.to_dict(),
            'job': assignment.job.to_dict(),
            'agent': assignment.agent.to_dict() if assignment.agent else None,
            'checkin': _record_dict(self.ledger.current_checkin(assignment.id, CHECKIN)),
            'checkout': _record_dict(current_checkout),
            'history': [r.to_dict() for r in checkins],
            'proofs': [p.to_dict() for p in self.proofs.list_for(assignment.id)],
            'missing_proofs': self.proofs.missing(assignment.id),
        }

    # ==================================================================
    # Maintenance
    # ==================================================================

    def expire_stale_offers(self):
        return self.offers.expire_stale()

    def offers_for_job(self, job_id):
        return (
            AutoAssignmentOffer.query.filter_by(job_id=job_id)
            .order_by(AutoAssignmentOffer.priority_level, AutoAssignmentOffer.offered_at)
            .all()
        )

    def assignments_for_job(self, job_id):
        return (
            JobAssignment.query.filter_by(job_id=job_id)
            .order_by(JobAssignment.assigned_at)
            .all()
        )

    def active_assignment_count(self, job_id):
        return JobAssignment.query.filter(
            JobAssignment.job_id == job_id, JobAssignment.status != CANCELLED,
        ).count()


def _record_dict(record):
    return record.to_dict() if record else None
