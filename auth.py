"""
Admin authentication for the ticket dashboard.
Password hashing via werkzeug, bearer tokens via PyJWT.
"""
import datetime
from functools import wraps

import jwt
from flask import request, jsonify, g
from werkzeug.security import generate_password_hash, check_password_hash

import config
import database


class AuthError(Exception):
    status_code = 401


def hash_password(password):
    return generate_password_hash(password, method='pbkdf2:sha256')


def verify_password(password_hash, password):
    return check_password_hash(password_hash, password)


def authenticate(login_id, password) -> dict:
    """Return the admin row for valid credentials, else raise AuthError."""
    if not login_id or not password:
        raise AuthError('Login ID and password are required')
    admin = database.get_admin_by_login(login_id)
    if admin is None or not verify_password(admin['password_hash'], password):
        raise AuthError('Invalid credentials')
    if not admin['is_active']:
        raise AuthError('Account is deactivated')
    return admin


def generate_token(admin: dict) -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        'admin_id': admin['id'],
        'login_id': admin['login_id'],
        'access_level': admin['access_level'],
        'iat': now,
        'exp': now + datetime.timedelta(hours=config.JWT_EXPIRY_HOURS),
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token):
    """Token payload, or None when the token is expired or invalid."""
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def require_admin(f):
    """Protect a route with an admin bearer token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return jsonify({'error': 'Missing or invalid authorization header'}), 401

        payload = decode_token(auth_header.split(' ', 1)[1])
        if not payload:
            return jsonify({'error': 'Invalid or expired token'}), 401

        g.admin = payload
        return f(*args, **kwargs)

    return decorated_function
