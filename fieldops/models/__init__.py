"""
Database models
"""
from .base import BaseModel, generate_uuid, utcnow, as_utc
from .job import Job
from .agent import AgentProfile, AgentSkill
from .job_assignment import JobAssignment
from .checkin import CheckinRecord
from .proof import ProofRecord
from .offer import AutoAssignmentOffer
from .earning import AgentEarning

__all__ = [
    'BaseModel',
    'generate_uuid',
    'utcnow',
    'as_utc',
    'Job',
    'AgentProfile',
    'AgentSkill',
    'JobAssignment',
    'CheckinRecord',
    'ProofRecord',
    'AutoAssignmentOffer',
    'AgentEarning',
]
