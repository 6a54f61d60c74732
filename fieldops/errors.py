"""
Dispatch error taxonomy.

Business-rule refusals carry a stable ``code`` and enough ``details`` for a
client to render a message. ``Unavailable`` is reserved for the persistence
layer being unreachable so callers can tell "try something else" apart from
"retry later".
"""

import logging
from functools import wraps

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Base class for every error the engine surfaces to callers"""
    code = "dispatch.error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self):
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DispatchError):
    code = "request.invalid"
    default_message = "Invalid request"


class AlreadyAssigned(DispatchError):
    code = "request.conflict"
    status_code = 409
    default_message = "Job already assigned"


class NotYourJob(DispatchError):
    code = "job.not_assigned"
    status_code = 403
    default_message = "Not your job"


class InvalidStatus(DispatchError):
    code = "job.invalid_status"
    status_code = 409
    default_message = "Transition not allowed from the current status"


class TooFarFromJob(DispatchError):
    code = "job.too_far"
    default_message = "Too far from job location"

    def __init__(self, distance_meters, max_distance, message=None):
        super().__init__(message, distance_meters=distance_meters, max_distance=max_distance)
        self.distance_meters = distance_meters
        self.max_distance = max_distance


class ProofIncomplete(DispatchError):
    code = "proof.incomplete"
    default_message = "Must upload both box and finished photos before checkout"


class OfferExpired(DispatchError):
    code = "offer.expired"
    status_code = 409
    default_message = "Offer is no longer available"


class AlreadyCheckedIn(DispatchError):
    code = "job.already_checked_in"
    status_code = 409
    default_message = "Already checked in"


class JobNotFound(DispatchError):
    code = "job.not_found"
    status_code = 404
    default_message = "Job not found"


class Unauthorized(DispatchError):
    code = "auth.forbidden"
    status_code = 403
    default_message = "Not allowed to perform this action"


class Unavailable(DispatchError):
    code = "service.unavailable"
    status_code = 503
    default_message = "Storage is temporarily unavailable, retry later"


def storage_guard(f):
    """Translate connection-level database failures into ``Unavailable``.

    Integrity errors are left alone; the operations that can hit a uniqueness
    constraint translate those themselves.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            from fieldops import db
            db.session.rollback()
            logger.exception("Persistence unavailable during %s", f.__name__)
            raise Unavailable() from exc
    return decorated_function
