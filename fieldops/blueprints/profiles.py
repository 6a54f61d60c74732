"""
Profiles blueprint
Agent profile and stats updates from the profile collaborator
"""
from flask import Blueprint, jsonify, request

from fieldops.blueprints.auth import require_api_key
from fieldops.errors import ValidationError
from fieldops.services import get_dispatch
from fieldops.tiers import AgentStatsChanged

profiles_bp = Blueprint('profiles', __name__)


@profiles_bp.route('/<agent_id>', methods=['PUT'])
@require_api_key
def upsert_profile(agent_id):
    """
    Create or update an agent profile

    PUT /api/profiles/<agent_id>
    Body: {"status": "approved", "auto_booking_enabled": true, "skills": ["plumbing"], ...}
    """
    data = request.get_json(silent=True) or {}
    agent = get_dispatch().upsert_agent(agent_id, data)
    return jsonify({'agent': agent.to_dict()}), 200


@profiles_bp.route('/<agent_id>/stats', methods=['POST'])
@require_api_key
def stats_changed(agent_id):
    """
    Agent lifetime stats changed; re-derive tier

    POST /api/profiles/<agent_id>/stats
    Body: {"total_jobs": 31, "rating": 4.6}
    """
    data = request.get_json(silent=True) or {}
    if 'total_jobs' not in data or 'rating' not in data:
        raise ValidationError("total_jobs and rating are required")

    old_tier, new_tier = get_dispatch().agent_stats_changed(
        AgentStatsChanged(agent_id, data['total_jobs'], data['rating'])
    )
    return jsonify({
        'agent_id': agent_id,
        'previous_tier': old_tier,
        'tier': new_tier,
        'changed': old_tier != new_tier,
    }), 200
