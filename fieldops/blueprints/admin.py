"""
Admin blueprint
Manual assignment, verification, payout and completion
"""
from flask import Blueprint, jsonify, request

from fieldops.actors import ADMIN
from fieldops.blueprints.auth import require_role
from fieldops.errors import ValidationError
from fieldops.services import get_dispatch

admin_bp = Blueprint('admin', __name__)

VERIFY_ACTIONS = ('verify', 'approve')
REJECT_ACTIONS = ('reject',)


@admin_bp.route('/jobs/<job_id>/assign', methods=['POST'])
@require_role(ADMIN)
def assign_job(actor, job_id):
    """
    Assign a job to an agent

    POST /api/admin/jobs/<job_id>/assign
    Body: {"agent_id": "uuid"}
    """
    data = request.get_json(silent=True) or {}
    agent_id = data.get('agent_id')
    if not agent_id:
        raise ValidationError("agent_id is required", field="agent_id")

    assignment = get_dispatch().assign_job(actor, job_id, agent_id)
    return jsonify({'message': 'Job assigned', 'assignment': assignment.to_dict()}), 201


@admin_bp.route('/jobs/<job_id>/offers', methods=['GET'])
@require_role(ADMIN)
def job_offers(actor, job_id):
    dispatch = get_dispatch()
    return jsonify({
        'offers': [o.to_dict() for o in dispatch.offers_for_job(job_id)],
        'assignments': [a.to_dict() for a in dispatch.assignments_for_job(job_id)],
    }), 200


@admin_bp.route('/assignments/<assignment_id>/verify', methods=['GET'])
@require_role(ADMIN)
def verification_details(actor, assignment_id):
    """
    Check-in, checkout and proof photos for review

    GET /api/admin/assignments/<assignment_id>/verify
    """
    return jsonify(get_dispatch().verification_details(assignment_id, actor)), 200


@admin_bp.route('/assignments/<assignment_id>/verify', methods=['POST'])
@require_role(ADMIN)
def verify(actor, assignment_id):
    """
    Approve or reject a checked-out job

    POST /api/admin/assignments/<assignment_id>/verify
    Body: {"action": "verify" | "reject", "notes": "..."}
    """
    data = request.get_json(silent=True) or {}
    action = data.get('action', 'verify')
    notes = data.get('notes')
    dispatch = get_dispatch()

    if action in VERIFY_ACTIONS:
        assignment = dispatch.verify(assignment_id, actor, notes)
        message = 'Job verified'
    elif action in REJECT_ACTIONS:
        assignment = dispatch.reject(assignment_id, actor, notes)
        message = 'Job rejected, agent notified'
    else:
        raise ValidationError("action must be 'verify' or 'reject'", field="action")

    return jsonify({'message': message, 'assignment': assignment.to_dict()}), 200


@admin_bp.route('/assignments/<assignment_id>/pay', methods=['POST'])
@require_role(ADMIN)
def mark_paid(actor, assignment_id):
    assignment = get_dispatch().mark_paid(assignment_id, actor)
    return jsonify({'message': 'Payout released', 'assignment': assignment.to_dict()}), 200


@admin_bp.route('/assignments/<assignment_id>/complete', methods=['POST'])
@require_role(ADMIN)
def complete(actor, assignment_id):
    assignment = get_dispatch().complete(assignment_id, actor)
    return jsonify({'message': 'Job completed', 'assignment': assignment.to_dict()}), 200


@admin_bp.route('/assignments/<assignment_id>/cancel', methods=['POST'])
@require_role(ADMIN)
def cancel(actor, assignment_id):
    data = request.get_json(silent=True) or {}
    assignment = get_dispatch().cancel_assignment(assignment_id, actor, data.get('reason'))
    return jsonify({'message': 'Assignment cancelled', 'assignment': assignment.to_dict()}), 200


@admin_bp.route('/offers/expire', methods=['POST'])
@require_role(ADMIN)
def expire_offers(actor):
    """Run the stale-offer sweep now"""
    return jsonify(get_dispatch().expire_stale_offers()), 200
