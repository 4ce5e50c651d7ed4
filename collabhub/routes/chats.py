# Chat routes: chats, messages and read state

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from collabhub.schemas import (
    CreateChatRequest, SendMessageRequest, UpdateMessageRequest, parse_payload
)
from collabhub.services import get_services

chats_bp = Blueprint('chats', __name__, url_prefix='/api/v1/chats')


@chats_bp.route('', methods=['POST'])
@login_required
def create_chat():
    data = parse_payload(CreateChatRequest, request.get_json(silent=True))
    chat = get_services().chats.create_chat(current_user.id, data)
    return jsonify({'success': True, 'chat': chat}), 201


@chats_bp.route('', methods=['GET'])
@login_required
def list_chats():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 20, type=int)
    chats = get_services().chats.get_user_chats(current_user.id, page, limit)
    return jsonify({'success': True, 'chats': chats, 'page': page})


@chats_bp.route('/<int:chat_id>/messages', methods=['GET'])
@login_required
def chat_messages(chat_id):
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 50, type=int)
    messages = get_services().chats.get_chat_messages(chat_id, current_user.id, page, limit)
    return jsonify({'success': True, 'messages': messages, 'page': page})


@chats_bp.route('/messages', methods=['POST'])
@login_required
def send_message():
    data = parse_payload(SendMessageRequest, request.get_json(silent=True))
    message = get_services().chats.send_message(current_user.id, data)
    return jsonify({'success': True, 'message': message}), 201


@chats_bp.route('/messages/<int:message_id>', methods=['PUT'])
@login_required
def update_message(message_id):
    data = parse_payload(UpdateMessageRequest, request.get_json(silent=True))
    message = get_services().chats.update_message(message_id, current_user.id, data.content)
    return jsonify({'success': True, 'message': message})


@chats_bp.route('/messages/<int:message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    get_services().chats.delete_message(message_id, current_user.id)
    return jsonify({'success': True})


@chats_bp.route('/<int:chat_id>/read', methods=['PUT'])
@login_required
def mark_read(chat_id):
    marked = get_services().chats.mark_messages_as_read(chat_id, current_user.id)
    return jsonify({'success': True, 'marked': marked})


@chats_bp.route('/unread/count', methods=['GET'])
@login_required
def unread_count():
    count = get_services().chats.get_unread_count(current_user.id)
    return jsonify({'success': True, 'count': count})
