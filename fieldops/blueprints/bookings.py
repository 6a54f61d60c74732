"""
Bookings blueprint
Inbound job lifecycle events from the booking collaborator
"""
from flask import Blueprint, jsonify, request

from fieldops.blueprints.auth import require_api_key
from fieldops.services import get_dispatch

bookings_bp = Blueprint('bookings', __name__)


@bookings_bp.route('/jobs', methods=['POST'])
@require_api_key
def job_created():
    """
    A job was booked

    POST /api/bookings/jobs
    Body: {
        "id": "uuid" (optional),
        "service_type": "plumbing_leak",
        "total_price_cents": 20000,
        "labor_price_cents": 15000,
        "materials_cost_cents": 3000,
        "lat": 40.71, "lng": -74.00,
        "preferred_agent_id": "uuid" (optional),
        "auto_dispatch": true
    }
    """
    data = request.get_json(silent=True) or {}
    job = get_dispatch().job_created(data, auto_dispatch=data.get('auto_dispatch', True))
    return jsonify({'job': job.to_dict()}), 201


@bookings_bp.route('/jobs/<job_id>/cancel', methods=['POST'])
@require_api_key
def job_cancelled(job_id):
    data = request.get_json(silent=True) or {}
    job = get_dispatch().job_cancelled(job_id, data.get('reason'))
    return jsonify({'job': job.to_dict()}), 200
