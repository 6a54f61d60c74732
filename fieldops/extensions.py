"""
Shared Flask extension instances.

Created as a separate module to avoid circular imports when blueprints and
services need access to extensions that are initialised in create_app().
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from fieldops.events import EventBus

# Storage URI, default limits and the on/off switch come from the
# RATELIMIT_* config keys when init_app() runs.
limiter = Limiter(key_func=get_remote_address)

# Lifecycle events for the notification and payment collaborators.
events = EventBus()
