# Health, presence and notification routes

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from collabhub.services import get_services

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    services = get_services()
    return jsonify({
        'status': 'ok',
        'connectedUsers': services.registry.connected_count(),
        'cache': services.cache.enabled
    })


@main_bp.route('/api/v1/presence/online')
@login_required
def online_users():
    users = [entry.to_dict() for entry in get_services().registry.get_online_users()]
    return jsonify({'success': True, 'users': users})


@main_bp.route('/api/v1/notifications')
@login_required
def notifications():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 20, type=int)
    unread_only = request.args.get('unread', '').lower() in ('1', 'true', 'yes')
    items = get_services().chats.get_notifications(current_user.id, page, limit, unread_only)
    return jsonify({'success': True, 'notifications': items, 'page': page})


@main_bp.route('/api/v1/notifications/<int:notification_id>/read', methods=['POST'])
@login_required
def mark_notification_read(notification_id):
    item = get_services().chats.mark_notification_read(notification_id, current_user.id)
    return jsonify({'success': True, 'notification': item})
