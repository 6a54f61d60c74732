"""
HTTP surface tests: auth, error envelope and the main flows through the API
"""
import json

import pytest

from fieldops import db
from fieldops.events import ALL
from fieldops.extensions import events
from fieldops.models import AgentProfile, JobAssignment
from fieldops.scheduler import sweep_stale_offers

from conftest import EventRecorder, JOB_SITE, offset_north


@pytest.fixture
def app_recorder(app):
    recorder = EventRecorder()
    events.subscribe(ALL, recorder)
    yield recorder
    events.unsubscribe(ALL, recorder)


def claim(client, auth_headers, job_id, agent_id):
    response = client.post(f'/api/agent/gigs/{job_id}/accept', headers=auth_headers(agent_id))
    assert response.status_code == 201
    return json.loads(response.data)['assignment']


class TestAuth:
    """Test authentication and authorization on the API"""

    def test_missing_token(self, client):
        response = client.get('/api/agent/gigs')
        assert response.status_code == 401

    def test_bad_token(self, client):
        response = client.get('/api/agent/gigs', headers={'Authorization': 'Bearer not-a-jwt'})
        assert response.status_code == 401

    def test_agent_on_admin_route(self, client, auth_headers, agent):
        response = client.post('/api/admin/offers/expire', headers=auth_headers(agent.id))
        assert response.status_code == 403
        assert json.loads(response.data)['error']['code'] == 'auth.forbidden'

    def test_collaborator_key_required(self, client):
        response = client.post('/api/bookings/jobs', json={'service_type': 'cleaning', 'total_price_cents': 1})
        assert response.status_code == 401

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'healthy'


class TestAgentFlow:
    """Test an agent working a job through the API"""

    def test_gigs_and_claim(self, client, auth_headers, job, agent):
        response = client.get('/api/agent/gigs', headers=auth_headers(agent.id))
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['count'] == 1
        assert data['jobs'][0]['agent_payout_cents'] == 11250

        assignment = claim(client, auth_headers, job.id, agent.id)
        assert assignment['status'] == 'assigned'
        assert assignment['agent_payout_cents'] + assignment['platform_fee_cents'] == 20000

    def test_double_claim_conflict(self, client, auth_headers, job, agent, agent_factory):
        claim(client, auth_headers, job.id, agent.id)
        rival = agent_factory()

        response = client.post(f'/api/agent/gigs/{job.id}/accept', headers=auth_headers(rival.id))
        assert response.status_code == 409
        assert json.loads(response.data)['error']['code'] == 'request.conflict'

    def test_check_in_too_far(self, client, auth_headers, job, agent):
        assignment = claim(client, auth_headers, job.id, agent.id)
        lat, lng = offset_north(JOB_SITE, 0.00135)

        response = client.post(
            f"/api/agent/jobs/{assignment['id']}/checkin",
            headers=auth_headers(agent.id),
            json={'latitude': lat, 'longitude': lng},
        )

        assert response.status_code == 400
        error = json.loads(response.data)['error']
        assert error['code'] == 'job.too_far'
        assert error['details'] == {'distance_meters': 150, 'max_distance': 100}
        assert db.session.get(JobAssignment, assignment['id']).status == 'assigned'

    def test_check_in_requires_location(self, client, auth_headers, job, agent):
        assignment = claim(client, auth_headers, job.id, agent.id)
        response = client.post(
            f"/api/agent/jobs/{assignment['id']}/checkin", headers=auth_headers(agent.id), json={},
        )
        assert response.status_code == 400
        assert json.loads(response.data)['error']['code'] == 'request.invalid'

    def test_not_your_job(self, client, auth_headers, job, agent, agent_factory):
        assignment = claim(client, auth_headers, job.id, agent.id)
        stranger = agent_factory()

        response = client.post(
            f"/api/agent/jobs/{assignment['id']}/checkin",
            headers=auth_headers(stranger.id),
            json={'latitude': JOB_SITE[0], 'longitude': JOB_SITE[1]},
        )
        assert response.status_code == 403
        assert json.loads(response.data)['error']['code'] == 'job.not_assigned'

    def test_full_flow_to_completion(self, client, auth_headers, job, agent, app_recorder):
        headers = auth_headers(agent.id)
        admin_headers = auth_headers('admin-1', 'admin')
        assignment_id = claim(client, auth_headers, job.id, agent.id)['id']
        here = {'latitude': JOB_SITE[0], 'longitude': JOB_SITE[1]}

        response = client.post(f'/api/agent/jobs/{assignment_id}/checkin', headers=headers, json=here)
        assert response.status_code == 200
        assert json.loads(response.data)['location_verified'] is True

        response = client.post(f'/api/agent/jobs/{assignment_id}/checkout', headers=headers, json=here)
        assert response.status_code == 400
        assert json.loads(response.data)['error']['code'] == 'proof.incomplete'

        for proof_type in ('box', 'finished'):
            response = client.post(
                f'/api/agent/jobs/{assignment_id}/proof',
                headers=headers,
                json={'type': proof_type, 'photo_url': f'https://cdn.example.com/{proof_type}.jpg'},
            )
            assert response.status_code == 201

        response = client.post(
            f'/api/agent/jobs/{assignment_id}/checkout',
            headers=headers,
            json={**here, 'survey': {'difficulty': 'easy'}},
        )
        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'pending_verification'

        response = client.get(f'/api/admin/assignments/{assignment_id}/verify', headers=admin_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['checkout']['survey'] == {'difficulty': 'easy'}

        response = client.post(
            f'/api/admin/assignments/{assignment_id}/verify',
            headers=admin_headers,
            json={'action': 'verify', 'notes': 'ok'},
        )
        assert response.status_code == 200
        assert json.loads(response.data)['assignment']['status'] == 'verified'

        response = client.post(f'/api/admin/assignments/{assignment_id}/pay', headers=admin_headers)
        assert response.status_code == 200

        response = client.post(f'/api/admin/assignments/{assignment_id}/complete', headers=admin_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['assignment']['status'] == 'completed'

        names = [name for name, _ in app_recorder.events]
        assert names == ['job_assigned', 'job_started', 'payout_ready', 'job_completed']

    def test_admin_reject(self, client, auth_headers, checked_out):
        response = client.post(
            f'/api/admin/assignments/{checked_out.id}/verify',
            headers=auth_headers('admin-1', 'admin'),
            json={'action': 'reject', 'notes': 'Blurry photo'},
        )
        assert response.status_code == 200
        assert json.loads(response.data)['assignment']['status'] == 'in_progress'

    def test_unknown_verify_action(self, client, auth_headers, checked_out):
        response = client.post(
            f'/api/admin/assignments/{checked_out.id}/verify',
            headers=auth_headers('admin-1', 'admin'),
            json={'action': 'shrug'},
        )
        assert response.status_code == 400


class TestOffersApi:
    """Test responding to offers over HTTP"""

    def test_accept_offer(self, client, auth_headers, api_key_headers, agent):
        response = client.post('/api/bookings/jobs', headers=api_key_headers, json={
            'service_type': 'plumbing_leak',
            'total_price_cents': 15000,
            'labor_price_cents': 12000,
            'materials_cost_cents': 3000,
            'lat': JOB_SITE[0],
            'lng': JOB_SITE[1],
        })
        assert response.status_code == 201
        assert json.loads(response.data)['job']['auto_assignment_status'] == 'offered'

        response = client.get('/api/agent/offers', headers=auth_headers(agent.id))
        offers = json.loads(response.data)['offers']
        assert len(offers) == 1

        response = client.post(
            f"/api/agent/offers/{offers[0]['id']}/respond",
            headers=auth_headers(agent.id),
            json={'decision': 'accept'},
        )
        assert response.status_code == 200
        assignment = json.loads(response.data)['assignment']
        assert assignment['auto_assigned'] is True
        # silver on $120 labor + $30 materials
        assert assignment['agent_payout_cents'] == 9600
        assert assignment['platform_fee_cents'] == 5400

    def test_expire_offers_endpoint(self, client, auth_headers):
        response = client.post('/api/admin/offers/expire', headers=auth_headers('admin-1', 'admin'))
        assert response.status_code == 200
        assert json.loads(response.data) == {'expired': 0, 'jobs_advanced': 0}


class TestCollaboratorApi:
    """Test booking and profile intake"""

    def test_invalid_job_payload(self, client, api_key_headers):
        response = client.post('/api/bookings/jobs', headers=api_key_headers, json={'service_type': 'x'})
        assert response.status_code == 400
        assert json.loads(response.data)['error']['details'] == {'field': 'total_price_cents'}

    def test_cancel_job(self, client, api_key_headers, job):
        response = client.post(
            f'/api/bookings/jobs/{job.id}/cancel', headers=api_key_headers, json={'reason': 'weather'},
        )
        assert response.status_code == 200
        assert json.loads(response.data)['job']['status'] == 'cancelled'

    def test_cancel_unknown_job(self, client, api_key_headers):
        response = client.post('/api/bookings/jobs/nope/cancel', headers=api_key_headers)
        assert response.status_code == 404

    def test_profile_upsert_and_stats(self, client, api_key_headers):
        response = client.put('/api/profiles/agent-7', headers=api_key_headers, json={
            'status': 'approved',
            'auto_booking_enabled': True,
            'skills': ['plumbing'],
            'home_lat': JOB_SITE[0],
            'home_lng': JOB_SITE[1],
        })
        assert response.status_code == 200
        assert json.loads(response.data)['agent']['skills'] == ['plumbing']

        response = client.post(
            '/api/profiles/agent-7/stats', headers=api_key_headers, json={'total_jobs': 75, 'rating': 4.79},
        )
        data = json.loads(response.data)
        assert data == {'agent_id': 'agent-7', 'previous_tier': 'bronze', 'tier': 'gold', 'changed': True}
        assert db.session.get(AgentProfile, 'agent-7').tier == 'gold'

    def test_stats_require_both_fields(self, client, api_key_headers, agent):
        response = client.post(f'/api/profiles/{agent.id}/stats', headers=api_key_headers, json={'rating': 4})
        assert response.status_code == 400


class TestCli:

    def test_expire_offers_command(self, app):
        result = app.test_cli_runner().invoke(args=['expire-offers'])
        assert result.exit_code == 0
        assert 'Expired 0 offers' in result.output

    def test_scheduler_sweep_never_raises(self, app):
        assert sweep_stale_offers(app) == {'expired': 0, 'jobs_advanced': 0}
