"""Agent profile model"""
from fieldops import db
from .base import BaseModel, utcnow

APPROVED = 'approved'
PENDING = 'pending'
SUSPENDED = 'suspended'

AGENT_STATUSES = (PENDING, APPROVED, SUSPENDED)


def skill_key(service_id):
    """Normalize a service id to its general skill, e.g. ``plumbing_leak`` -> ``plumbing``."""
    if not service_id:
        return None
    base = service_id.split('_')[0] if '_' in service_id else service_id
    return base.strip().lower().replace(' ', '_')


class AgentSkill(db.Model):
    """One service an agent is able to perform"""
    __tablename__ = 'agent_skills'

    agent_id = db.Column(db.String(36), db.ForeignKey('agent_profiles.id', ondelete='CASCADE'), primary_key=True)
    service_id = db.Column(db.String(100), primary_key=True)

    def __repr__(self):
        return f'<AgentSkill {self.agent_id} {self.service_id}>'


class AgentProfile(BaseModel):
    """
    Agent profile - maintained by the profile collaborator.

    ``tier`` is derived from ``total_jobs`` and ``rating`` and feeds payout
    computation; the engine never edits it directly.
    """
    __tablename__ = 'agent_profiles'

    name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PENDING)

    total_jobs = db.Column(db.Integer, nullable=False, default=0)
    rating = db.Column(db.Float, nullable=False, default=0.0)
    tier = db.Column(db.String(20), nullable=False, default='bronze')

    auto_booking_enabled = db.Column(db.Boolean, nullable=False, default=False)
    auto_booking_since = db.Column(db.DateTime(timezone=True), nullable=True)
    service_area_miles = db.Column(db.Float, nullable=True)
    home_lat = db.Column(db.Float, nullable=True)
    home_lng = db.Column(db.Float, nullable=True)

    # Payout destination handed to the payment collaborator
    payout_account_id = db.Column(db.String(255), nullable=True)

    skills = db.relationship('AgentSkill', cascade='all, delete-orphan', lazy='selectin')

    __table_args__ = (
        db.CheckConstraint('rating >= 0 AND rating <= 5', name='ck_agent_rating_range'),
        db.Index('ix_agent_profiles_auto_booking', 'status', 'auto_booking_enabled'),
    )

    def __repr__(self):
        return f'<AgentProfile {self.id} ({self.tier})>'

    @property
    def home_location(self):
        if self.home_lat is None or self.home_lng is None:
            return None
        return (self.home_lat, self.home_lng)

    @property
    def skill_ids(self):
        return {skill.service_id for skill in self.skills}

    def set_skills(self, service_ids):
        wanted = set(service_ids or [])
        self.skills = [s for s in self.skills if s.service_id in wanted]
        for service_id in sorted(wanted - self.skill_ids):
            self.skills.append(AgentSkill(service_id=service_id))

    def has_skill_for(self, service_type):
        """An agent with no skills listed takes any service."""
        skills = self.skill_ids
        if not skills:
            return True
        if service_type in skills:
            return True
        target = skill_key(service_type)
        return any(skill_key(s) == target for s in skills)

    def enable_auto_booking(self, enabled):
        if enabled and not self.auto_booking_enabled:
            self.auto_booking_since = utcnow()
        self.auto_booking_enabled = bool(enabled)

    def to_dict(self, exclude=None):
        data = super().to_dict(exclude=exclude)
        data['skills'] = sorted(self.skill_ids)
        return data
