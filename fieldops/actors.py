"""Who is calling: the authenticated agent or admin behind a request."""

from collections import namedtuple

from fieldops.errors import Unauthorized

AGENT = "agent"
ADMIN = "admin"
ROLES = (AGENT, ADMIN)

Actor = namedtuple("Actor", ["id", "role"])


def require_admin(actor):
    if actor is None or actor.role != ADMIN:
        raise Unauthorized("Admin access required")
    return actor


# Inbound collaborator events act with admin rights
SYSTEM = Actor("system", ADMIN)
