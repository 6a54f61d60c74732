"""
Dispatch engine services
"""
from flask import current_app

from .proofs import ProofGate
from .ledger import AssignmentLedger
from .offers import OfferBroker, ACCEPT, DECLINE
from .dispatch import DispatchService


def get_dispatch():
    """Build a DispatchService for the current app's config and event bus."""
    from fieldops.extensions import events
    return DispatchService.from_config(current_app.config, events)


__all__ = [
    'ProofGate',
    'AssignmentLedger',
    'OfferBroker',
    'DispatchService',
    'ACCEPT',
    'DECLINE',
    'get_dispatch',
]
