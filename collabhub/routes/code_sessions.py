# Code collaboration routes

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from collabhub.schemas import (
    CreateSessionRequest, InviteUserRequest, UpdateCodeRequest, UpdateCursorRequest, parse_payload
)
from collabhub.services import get_services

code_bp = Blueprint('code_sessions', __name__, url_prefix='/api/v1/code-sessions')


def _coordinator():
    return get_services().code_sessions


@code_bp.route('', methods=['POST'])
@login_required
def create_session():
    data = parse_payload(CreateSessionRequest, request.get_json(silent=True))
    session = _coordinator().create_session(current_user.id, data)
    return jsonify({'success': True, 'session': session}), 201


@code_bp.route('/user/sessions', methods=['GET'])
@login_required
def user_sessions():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    result = _coordinator().get_user_sessions(current_user.id, page, limit)
    return jsonify({'success': True, **result})


@code_bp.route('/public/sessions', methods=['GET'])
@login_required
def public_sessions():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    language = request.args.get('language') or None
    result = _coordinator().get_public_sessions(page, limit, language)
    return jsonify({'success': True, **result})


@code_bp.route('/stats/overview', methods=['GET'])
@login_required
def stats():
    return jsonify({'success': True, 'stats': _coordinator().get_session_stats()})


@code_bp.route('/join/<invite_code>', methods=['GET'])
@login_required
def preview_invite(invite_code):
    result = _coordinator().get_session_by_invite_code(invite_code, current_user.id)
    return jsonify({'success': True, **result})


@code_bp.route('/join/<invite_code>', methods=['POST'])
@login_required
def join_by_invite(invite_code):
    session = _coordinator().join_by_invite_code(invite_code, current_user.id)
    return jsonify({'success': True, 'session': session})


@code_bp.route('/<int:session_id>', methods=['GET'])
@login_required
def get_session(session_id):
    session = _coordinator().get_session(session_id, current_user.id)
    return jsonify({'success': True, 'session': session})


@code_bp.route('/<int:session_id>', methods=['DELETE'])
@login_required
def delete_session(session_id):
    _coordinator().delete_session(session_id, current_user.id)
    return jsonify({'success': True})


@code_bp.route('/<int:session_id>/join', methods=['POST'])
@login_required
def join_session(session_id):
    session = _coordinator().join_session(session_id, current_user.id)
    return jsonify({'success': True, 'session': session})


@code_bp.route('/<int:session_id>/leave', methods=['POST'])
@login_required
def leave_session(session_id):
    _coordinator().leave_session(session_id, current_user.id)
    return jsonify({'success': True})


@code_bp.route('/<int:session_id>/code', methods=['PUT'])
@login_required
def update_code(session_id):
    data = parse_payload(UpdateCodeRequest, request.get_json(silent=True))
    cursor = data.cursor_position.model_dump() if data.cursor_position else None
    result = _coordinator().update_code(session_id, current_user.id, data.code, cursor)
    return jsonify({'success': True, **result})


@code_bp.route('/<int:session_id>/cursor', methods=['PUT'])
@login_required
def update_cursor(session_id):
    data = parse_payload(UpdateCursorRequest, request.get_json(silent=True))
    result = _coordinator().update_cursor(session_id, current_user.id, data.cursor_position.model_dump())
    return jsonify({'success': True, **result})


@code_bp.route('/<int:session_id>/end', methods=['PUT'])
@login_required
def end_session(session_id):
    session = _coordinator().end_session(session_id, current_user.id)
    return jsonify({'success': True, 'session': session})


@code_bp.route('/<int:session_id>/invite-code', methods=['POST'])
@login_required
def invite_code(session_id):
    result = _coordinator().generate_invite_code(session_id, current_user.id)
    return jsonify({'success': True, **result})


@code_bp.route('/<int:session_id>/invite', methods=['POST'])
@login_required
def invite_user(session_id):
    data = parse_payload(InviteUserRequest, request.get_json(silent=True))
    added = _coordinator().invite_user(session_id, current_user.id, data.user_id)
    return jsonify({'success': True, 'invited': added})
