"""
Offer broker: auto-dispatch by time-boxed offers.

Eligible agents are ranked into priority levels (referral first, then
top-rated, then everyone else) and offered the job one level at a time. A
wave ends when every offer in it is declined or expired; the next level is
then offered, and when nobody is left the job goes to the manual-claim pool.
The first agent to accept wins; the rest of the wave is expired.
"""

import logging
from collections import namedtuple
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from fieldops import db, geo
from fieldops.errors import DispatchError, JobNotFound, NotYourJob, OfferExpired, ValidationError, storage_guard
from fieldops.events import JOB_RETURNED_TO_POOL, OFFER_CREATED, OFFER_EXPIRED
from fieldops.models import AgentProfile, AutoAssignmentOffer, Job, as_utc, utcnow
from fieldops.models import agent as agent_model
from fieldops.models import job as job_model
from fieldops.models.offer import (
    ACCEPTED,
    DECLINED,
    EXPIRED,
    PENDING,
    PRIORITY_REFERRAL,
    PRIORITY_STANDARD,
    PRIORITY_TOP_RATED,
)

logger = logging.getLogger(__name__)

ACCEPT = 'accept'
DECLINE = 'decline'

RankedAgent = namedtuple('RankedAgent', ['agent', 'priority_level'])

_NEVER = datetime.max.replace(tzinfo=timezone.utc)


class OfferBroker:
    def __init__(self, ledger, events, offer_window_minutes=10, high_rating_threshold=4.5,
                 default_service_area_miles=25.0, clock=utcnow):
        self.ledger = ledger
        self.events = events
        self.offer_window_minutes = offer_window_minutes
        self.high_rating_threshold = high_rating_threshold
        self.default_service_area_miles = default_service_area_miles
        self.clock = clock

    # ------------------------------------------------------------------
    # Eligibility and ranking
    # ------------------------------------------------------------------

    def is_eligible(self, agent, job):
        if agent.status != agent_model.APPROVED or not agent.auto_booking_enabled:
            return False
        if not agent.has_skill_for(job.service_type):
            return False
        return self.covers(agent, job)

    def covers(self, agent, job):
        """True when the job site is inside the agent's service area.

        Without both locations the area cannot be checked and is not enforced.
        """
        if not geo.has_coordinates(agent.home_location) or not geo.has_coordinates(job.location):
            return True
        miles = agent.service_area_miles or self.default_service_area_miles
        distance = geo.distance_meters(agent.home_location, job.location)
        return geo.is_within_radius(distance, geo.miles_to_meters(miles))

    def priority_level(self, agent, job):
        if job.preferred_agent_id and job.preferred_agent_id == agent.id:
            return PRIORITY_REFERRAL
        if (agent.rating or 0) >= self.high_rating_threshold:
            return PRIORITY_TOP_RATED
        return PRIORITY_STANDARD

    def rank_agents(self, job, exclude=()):
        """Eligible agents ordered by priority level, rating, then auto-booking seniority."""
        excluded = set(exclude)
        candidates = AgentProfile.query.filter_by(
            status=agent_model.APPROVED, auto_booking_enabled=True,
        ).all()

        ranked = [
            RankedAgent(agent, self.priority_level(agent, job))
            for agent in candidates
            if agent.id not in excluded and self.is_eligible(agent, job)
        ]
        ranked.sort(key=lambda r: (
            r.priority_level,
            -(r.agent.rating or 0),
            as_utc(r.agent.auto_booking_since or r.agent.created_at) or _NEVER,
            r.agent.id,
        ))
        return ranked

    # ------------------------------------------------------------------
    # Offer waves
    # ------------------------------------------------------------------

    @storage_guard
    def create_offers(self, job, exclude=()):
        """Offer ``job`` to the next priority level of agents not yet asked.

        Returns the new offers; an empty list means the job went to the
        manual-claim pool (or is not open any more).
        """
        if job.status != job_model.PENDING or self.ledger.active_for_job(job.id):
            return []

        already_offered = {
            row[0] for row in db.session.query(AutoAssignmentOffer.agent_id).filter_by(job_id=job.id)
        }
        ranked = self.rank_agents(job, exclude=already_offered | set(exclude))
        if not ranked:
            return self._return_to_pool(job)

        level = ranked[0].priority_level
        now = self.clock()
        expires_at = now + timedelta(minutes=self.offer_window_minutes)
        offers = [
            AutoAssignmentOffer(
                job_id=job.id,
                agent_id=r.agent.id,
                priority_level=level,
                status=PENDING,
                offered_at=now,
                expires_at=expires_at,
            )
            for r in ranked if r.priority_level == level
        ]
        db.session.add_all(offers)
        job.auto_assignment_status = job_model.AUTO_OFFERED
        try:
            db.session.commit()
        except IntegrityError:
            # Another worker opened the same wave first
            db.session.rollback()
            logger.warning("Offer wave for job %s already created elsewhere", job.id)
            return []

        logger.info("Offered job %s to %d agents at priority %d", job.id, len(offers), level)
        for offer in offers:
            self.events.emit(
                OFFER_CREATED,
                offer_id=offer.id,
                job_id=offer.job_id,
                agent_id=offer.agent_id,
                priority_level=offer.priority_level,
                expires_at=as_utc(offer.expires_at).isoformat(),
            )
        return offers

    def _return_to_pool(self, job):
        job.auto_assignment_status = job_model.AUTO_MANUAL
        db.session.commit()
        logger.info("No agents left to offer job %s; returned to manual pool", job.id)
        self.events.emit(JOB_RETURNED_TO_POOL, job_id=job.id, service_type=job.service_type)
        return []

    def advance_if_resolved(self, job_id):
        """Open the next wave once nobody holds a live offer for the job."""
        job = db.session.get(Job, job_id)
        if not job or job.status != job_model.PENDING:
            return False
        if job.auto_assignment_status != job_model.AUTO_OFFERED or self.ledger.active_for_job(job_id):
            return False
        live = AutoAssignmentOffer.query.filter_by(job_id=job_id, status=PENDING).count()
        if live:
            return False
        self.create_offers(job)
        return True

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def pending_for_agent(self, agent_id):
        now = self.clock()
        return (
            AutoAssignmentOffer.query.filter(
                AutoAssignmentOffer.agent_id == agent_id,
                AutoAssignmentOffer.status == PENDING,
                AutoAssignmentOffer.expires_at > now,
            )
            .order_by(AutoAssignmentOffer.expires_at)
            .all()
        )

    @storage_guard
    def respond(self, offer_id, agent_id, decision):
        """Accept or decline an offer.

        Accepting returns the new assignment; declining returns the offer.
        """
        if decision not in (ACCEPT, DECLINE):
            raise ValidationError("Decision must be 'accept' or 'decline'", field="decision")

        offer = db.session.get(AutoAssignmentOffer, offer_id)
        if not offer:
            raise JobNotFound("Offer not found")
        if offer.agent_id != agent_id:
            raise NotYourJob("Offer belongs to another agent")
        if offer.status != PENDING:
            raise OfferExpired("Offer already {}".format(offer.status), status=offer.status)

        now = self.clock()
        if offer.is_past_deadline(now):
            self._expire([offer.id], now)
            db.session.commit()
            self.advance_if_resolved(offer.job_id)
            raise OfferExpired(status=EXPIRED)

        if decision == DECLINE:
            return self._decline(offer, now)
        return self._accept(offer, now)

    def _decline(self, offer, now):
        rows = (
            db.session.query(AutoAssignmentOffer)
            .filter(AutoAssignmentOffer.id == offer.id, AutoAssignmentOffer.status == PENDING)
            .update({'status': DECLINED, 'responded_at': now}, synchronize_session=False)
        )
        if rows != 1:
            db.session.rollback()
            raise OfferExpired(status=offer.status)
        db.session.commit()
        logger.info("Agent %s declined offer %s", offer.agent_id, offer.id)
        self.advance_if_resolved(offer.job_id)
        return offer

    def _accept(self, offer, now):
        offer_id, job_id, agent_id = offer.id, offer.job_id, offer.agent_id

        won = (
            db.session.query(AutoAssignmentOffer)
            .filter(
                AutoAssignmentOffer.id == offer_id,
                AutoAssignmentOffer.status == PENDING,
                AutoAssignmentOffer.expires_at > now,
            )
            .update({'status': ACCEPTED, 'responded_at': now}, synchronize_session=False)
        )
        if won != 1:
            db.session.rollback()
            status = offer.status
            if status == PENDING:
                self._expire([offer_id], now)
                db.session.commit()
                status = EXPIRED
            raise OfferExpired(status=status)

        try:
            assignment = self.ledger.claim(
                job_id, agent_id, assigned_by='agent', auto_assigned=True, commit=False,
            )
        except DispatchError:
            # Job was taken (or closed) underneath us; this offer is dead.
            db.session.rollback()
            self._expire([offer_id], now)
            db.session.commit()
            raise

        siblings = self.expire_for_job(job_id, now=now, keep=offer_id)
        db.session.query(Job).filter_by(id=job_id).update(
            {'auto_assignment_status': job_model.AUTO_ACCEPTED}, synchronize_session=False,
        )
        db.session.commit()

        logger.info("Agent %s accepted offer %s; expired %d sibling offers", agent_id, offer_id, siblings)
        self.ledger.announce_assignment(assignment)
        return assignment

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_for_job(self, job_id, now=None, keep=None):
        """Expire every pending offer for ``job_id`` (except ``keep``). Caller commits."""
        query = db.session.query(AutoAssignmentOffer).filter(
            AutoAssignmentOffer.job_id == job_id,
            AutoAssignmentOffer.status == PENDING,
        )
        if keep is not None:
            query = query.filter(AutoAssignmentOffer.id != keep)
        return query.update(
            {'status': EXPIRED, 'responded_at': now or self.clock()},
            synchronize_session=False,
        )

    def _expire(self, offer_ids, now):
        return (
            db.session.query(AutoAssignmentOffer)
            .filter(AutoAssignmentOffer.id.in_(offer_ids), AutoAssignmentOffer.status == PENDING)
            .update({'status': EXPIRED, 'responded_at': now}, synchronize_session=False)
        )

    @storage_guard
    def expire_stale(self):
        """Expire offers past their deadline and move their jobs along.

        Returns a summary dict for the CLI and the scheduler log line.
        """
        now = self.clock()
        stale = AutoAssignmentOffer.query.filter(
            AutoAssignmentOffer.status == PENDING,
            AutoAssignmentOffer.expires_at <= now,
        ).all()
        if not stale:
            return {'expired': 0, 'jobs_advanced': 0}

        job_ids = sorted({offer.job_id for offer in stale})
        # Per-offer compare-and-set; an offer accepted mid-sweep is skipped and gets no event
        expired = [
            (offer.id, offer.job_id, offer.agent_id)
            for offer in stale if self._expire([offer.id], now)
        ]
        db.session.commit()

        for offer_id, job_id, agent_id in expired:
            self.events.emit(OFFER_EXPIRED, offer_id=offer_id, job_id=job_id, agent_id=agent_id)

        advanced = 0
        for job_id in job_ids:
            if self.advance_if_resolved(job_id):
                advanced += 1

        logger.info("Expired %d stale offers; advanced %d jobs", len(expired), advanced)
        return {'expired': len(expired), 'jobs_advanced': advanced}
