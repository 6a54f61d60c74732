"""
Agent blueprint
Open jobs, offers, check-in, proof of work and checkout for field agents
"""
from flask import Blueprint, jsonify, request

from fieldops.actors import AGENT
from fieldops.blueprints.auth import require_role
from fieldops.errors import ValidationError
from fieldops.extensions import limiter
from fieldops.models import as_utc
from fieldops.services import get_dispatch
from fieldops.validators import read_coordinates

agent_bp = Blueprint('agent', __name__)


def _geo_response(result):
    return {
        'location_verified': result.location_verified,
        'distance_meters': result.distance_meters,
    }


@agent_bp.route('/gigs', methods=['GET'])
@require_role(AGENT)
def list_gigs(actor):
    """
    Jobs in the open pool this agent can claim

    GET /api/agent/gigs
    """
    jobs = get_dispatch().open_jobs(actor.id)
    return jsonify({'jobs': jobs, 'count': len(jobs)}), 200


@agent_bp.route('/gigs/<job_id>/accept', methods=['POST'])
@limiter.limit("20 per minute")
@require_role(AGENT)
def accept_gig(actor, job_id):
    """
    Claim an open job

    POST /api/agent/gigs/<job_id>/accept
    """
    assignment = get_dispatch().claim_job(job_id, actor.id)
    return jsonify({
        'message': 'Job accepted',
        'assignment': assignment.to_dict(),
    }), 201


@agent_bp.route('/offers', methods=['GET'])
@require_role(AGENT)
def list_offers(actor):
    offers = get_dispatch().pending_offers(actor.id)
    return jsonify({'offers': [o.to_dict() for o in offers]}), 200


@agent_bp.route('/offers/<offer_id>/respond', methods=['POST'])
@require_role(AGENT)
def respond_to_offer(actor, offer_id):
    """
    Accept or decline an auto-assignment offer

    POST /api/agent/offers/<offer_id>/respond
    Body: {"decision": "accept" | "decline"}
    """
    data = request.get_json(silent=True) or {}
    decision = data.get('decision')
    result = get_dispatch().respond_to_offer(offer_id, actor.id, decision)

    if decision == 'accept':
        return jsonify({'message': 'Offer accepted', 'assignment': result.to_dict()}), 200
    return jsonify({'message': 'Offer declined', 'offer': result.to_dict()}), 200


@agent_bp.route('/jobs', methods=['GET'])
@require_role(AGENT)
def my_jobs(actor):
    """
    Assignments for the calling agent

    GET /api/agent/jobs?status=in_progress
    """
    status = request.args.get('status')
    assignments = get_dispatch().my_assignments(actor.id, status=status)
    return jsonify({'assignments': [a.to_dict() for a in assignments]}), 200


@agent_bp.route('/jobs/<assignment_id>', methods=['GET'])
@require_role(AGENT)
def job_detail(actor, assignment_id):
    dispatch = get_dispatch()
    assignment = dispatch.assignment_for_agent(assignment_id, actor.id)
    return jsonify({
        'assignment': assignment.to_dict(),
        'job': assignment.job.to_dict(),
        'missing_proofs': dispatch.proofs.missing(assignment.id),
    }), 200


@agent_bp.route('/jobs/<assignment_id>/checkin', methods=['POST'])
@limiter.limit("20 per minute")
@require_role(AGENT)
def check_in(actor, assignment_id):
    """
    Check in at the job site

    POST /api/agent/jobs/<assignment_id>/checkin
    Body: {"latitude": 40.7128, "longitude": -74.0060}
    """
    data = request.get_json(silent=True) or {}
    lat, lng = read_coordinates(data)
    result = get_dispatch().check_in(assignment_id, actor.id, lat, lng)
    return jsonify({'message': 'Checked in', **_geo_response(result)}), 200


@agent_bp.route('/jobs/<assignment_id>/proof', methods=['POST'])
@require_role(AGENT)
def upload_proof(actor, assignment_id):
    """
    Record a proof-of-work photo

    POST /api/agent/jobs/<assignment_id>/proof
    Body: {"type": "box" | "finished", "photo_url": "https://...", "notes": "..."}
    """
    data = request.get_json(silent=True) or {}
    record = get_dispatch().submit_proof(
        assignment_id, actor.id, data.get('type'), data.get('photo_url'), data.get('notes'),
    )
    return jsonify({'proof': record.to_dict()}), 201


@agent_bp.route('/jobs/<assignment_id>/proof', methods=['GET'])
@require_role(AGENT)
def list_proof(actor, assignment_id):
    records = get_dispatch().proofs_for(assignment_id, actor.id)
    return jsonify({'proofs': [r.to_dict() for r in records]}), 200


@agent_bp.route('/jobs/<assignment_id>/checkout', methods=['POST'])
@require_role(AGENT)
def check_out(actor, assignment_id):
    """
    Check out and submit the job for verification

    POST /api/agent/jobs/<assignment_id>/checkout
    Body: {"latitude": ..., "longitude": ..., "survey": {...}}
    """
    data = request.get_json(silent=True) or {}
    lat, lng = read_coordinates(data, required=False)
    survey = data.get('survey')
    if survey is not None and not isinstance(survey, dict):
        raise ValidationError("survey must be an object", field="survey")

    dispatch = get_dispatch()
    result = dispatch.check_out(assignment_id, actor.id, lat, lng, survey)
    assignment = dispatch.ledger.get(assignment_id)
    return jsonify({
        'message': 'Checked out, awaiting verification',
        'status': assignment.status,
        'checked_out_at': as_utc(assignment.checked_out_at).isoformat(),
        **_geo_response(result),
    }), 200


@agent_bp.route('/jobs/<assignment_id>/cancel', methods=['POST'])
@require_role(AGENT)
def cancel(actor, assignment_id):
    data = request.get_json(silent=True) or {}
    assignment = get_dispatch().cancel_assignment(assignment_id, actor, data.get('reason'))
    return jsonify({'message': 'Assignment cancelled', 'assignment': assignment.to_dict()}), 200
