# Authentication routes

import re

from flask import Blueprint, jsonify
from flask import request
from flask_login import current_user, login_required
from werkzeug.security import check_password_hash, generate_password_hash

from collabhub.errors import AuthenticationError, ValidationError
from collabhub.extensions import db
from collabhub.models import User
from collabhub.schemas import LoginRequest, RegisterRequest, parse_payload
from collabhub.services import get_services
from collabhub.services.chat import format_user

auth_bp = Blueprint('auth', __name__, url_prefix='/api/v1/auth')


def validate_username(username):
    # Validate username format and length
    if not username or len(username) < 3:
        return False, "user name should be at least 3 characters long"

    if len(username) > 30:
        return False, "user name should be less than 30 characters long"

    # Only alphanumeric, hyphens, underscores
    if not re.match(r'^[a-zA-Z0-9_-]+$', username):
        return False, "user name can only contain letters, numbers, hyphens, and underscores"

    return True, ""


def validate_password(password):
    # Validate password strength
    if not password or len(password) < 8:
        return False, "password should be at least 8 characters long"

    if len(password) > 100:
        return False, "password should be less than 100 characters long"

    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)

    if not (has_upper and has_lower and has_digit):
        return False, "password should contain at least one uppercase letter, one lowercase letter, and one digit"

    return True, ""


def _token_response(user, status=200):
    token = get_services().resolver.issue_token(user.id)
    return jsonify({'success': True, 'token': token, 'user': format_user(user)}), status


@auth_bp.route('/register', methods=['POST'])
def register():
    data = parse_payload(RegisterRequest, request.get_json(silent=True))
    username = data.username.strip()

    is_valid, msg = validate_username(username)
    if not is_valid:
        raise ValidationError(msg)
    is_valid, msg = validate_password(data.password)
    if not is_valid:
        raise ValidationError(msg)

    if User.query.filter_by(username=username).first():
        raise ValidationError('user name already taken')
    if data.email and User.query.filter_by(email=data.email).first():
        raise ValidationError('email already registered')

    user = User(
        username=username,
        password=generate_password_hash(data.password, method='scrypt'),
        display_name=data.display_name,
        email=data.email,
        avatar_url=data.avatar
    )
    db.session.add(user)
    db.session.commit()
    return _token_response(user, 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    data = parse_payload(LoginRequest, request.get_json(silent=True))
    user = User.query.filter_by(username=data.username.strip()).first()
    if user is None or not check_password_hash(user.password, data.password):
        raise AuthenticationError('login failed. check your username and password', AuthenticationError.INVALID)
    return _token_response(user)


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'user': format_user(current_user)})
