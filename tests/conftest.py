"""
Pytest configuration and fixtures for the dispatch engine tests
"""
import pytest
import os
from datetime import datetime, timedelta, timezone

from fieldops import create_app, db
from fieldops.actors import ADMIN, AGENT, Actor
from fieldops.blueprints.auth import generate_token
from fieldops.events import ALL, EventBus
from fieldops.models import AgentProfile, Job, generate_uuid
from fieldops.services import DispatchService
from fieldops.tiers import tier_for

# Lower Manhattan; 0.00045 deg of latitude is ~50 m, 0.00135 deg is ~150 m
JOB_SITE = (40.7128, -74.0060)


def offset_north(point, degrees):
    return (point[0] + degrees, point[1])


class FakeClock:
    """Deterministic clock; advance it to move offer deadlines and timestamps."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, name, payload):
        self.events.append((name, payload))

    def named(self, name):
        return [payload for event, payload in self.events if event == name]


@pytest.fixture
def app():
    """Fresh application and in-memory database per test"""
    os.environ['FLASK_ENV'] = 'testing'
    app = create_app('testing')

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def bus(recorder):
    bus = EventBus()
    bus.subscribe(ALL, recorder)
    return bus


@pytest.fixture
def service(app, bus, clock):
    return DispatchService.from_config(app.config, bus, clock=clock)


@pytest.fixture
def admin():
    return Actor('admin-1', ADMIN)


@pytest.fixture
def agent_factory(app):
    """Factory for approved, auto-booking agents living next to the job site"""
    def _create_agent(skills=None, **kwargs):
        defaults = {
            'id': generate_uuid(),
            'name': 'Test Agent',
            'status': 'approved',
            'total_jobs': 12,
            'rating': 4.2,
            'auto_booking_enabled': True,
            'auto_booking_since': datetime(2026, 1, 1, tzinfo=timezone.utc),
            'service_area_miles': 25.0,
            'home_lat': JOB_SITE[0],
            'home_lng': JOB_SITE[1],
            'payout_account_id': 'acct_test',
        }
        defaults.update(kwargs)
        if 'tier' not in kwargs:
            defaults['tier'] = tier_for(defaults['total_jobs'], defaults['rating'])

        agent = AgentProfile(**defaults)
        agent.set_skills(skills or [])
        db.session.add(agent)
        db.session.commit()
        return agent

    return _create_agent


@pytest.fixture
def job_factory(app):
    """Factory for open jobs at the job site ($200 total, $150 labor, $30 materials)"""
    def _create_job(**kwargs):
        defaults = {
            'id': generate_uuid(),
            'customer_id': 'customer-1',
            'service_type': 'plumbing_leak',
            'total_price_cents': 20000,
            'labor_price_cents': 15000,
            'materials_cost_cents': 3000,
            'lat': JOB_SITE[0],
            'lng': JOB_SITE[1],
            'status': 'pending',
            'auto_assignment_status': 'manual',
        }
        defaults.update(kwargs)

        job = Job(**defaults)
        db.session.add(job)
        db.session.commit()
        return job

    return _create_job


@pytest.fixture
def agent(agent_factory):
    """A silver agent (12 jobs at 4.2)"""
    return agent_factory()


@pytest.fixture
def job(job_factory):
    return job_factory()


@pytest.fixture
def assignment(service, job, agent):
    """``agent`` holding ``job`` in status assigned"""
    return service.claim_job(job.id, agent.id)


@pytest.fixture
def started(service, assignment, agent):
    service.check_in(assignment.id, agent.id, *JOB_SITE)
    return assignment


@pytest.fixture
def proofed(service, started, agent):
    service.submit_proof(started.id, agent.id, 'box', 'https://cdn.example.com/box.jpg')
    service.submit_proof(started.id, agent.id, 'finished', 'https://cdn.example.com/finished.jpg')
    return started


@pytest.fixture
def checked_out(service, proofed, agent):
    service.check_out(proofed.id, agent.id, *JOB_SITE)
    return proofed


@pytest.fixture
def auth_headers(app):
    """Build bearer headers for an agent or admin"""
    def _headers(user_id, role=AGENT):
        token = generate_token(user_id, role)
        return {
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json'
        }
    return _headers


@pytest.fixture
def api_key_headers(app):
    return {
        'X-API-Key': app.config['COLLABORATOR_API_KEY'],
        'Content-Type': 'application/json'
    }
