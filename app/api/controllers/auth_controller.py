from datetime import datetime
from flask import request, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    get_jwt
)
from app.extensions import db
from app.models.user_models import User, Role
from app.models.system_models import RevokedToken
from app.utils.encryption_util import encryptor
from app.utils.decorators import audit_context, current_user_id

SELF_SERVICE_ROLES = ('patient', 'provider')


def register_user():
    """Self-service signup for patients and provider owners."""
    data = request.get_json(silent=True) or {}

    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    email = data['email'].strip()
    role_name = data.get('role', 'patient')
    if role_name not in SELF_SERVICE_ROLES:
        return jsonify({'error': 'Invalid role'}), 400

    # Check for uniqueness using the indexed hashed column
    if User.find_by_email(email):
        return jsonify({'error': 'Email already exists'}), 409

    role = Role.query.filter_by(name=role_name).first()
    if not role:
        return jsonify({'error': f"The '{role_name}' role has not been configured."}), 500

    user = User(
        email=encryptor.encrypt(email),
        email_hash=User.create_hash(email),
        name=encryptor.encrypt(data['name']) if data.get('name') else None,
        role_id=role.id
    )
    try:
        user.set_password(data['password'])
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(user)
    db.session.commit()
    audit_context(resource_id=user.id, user_id=user.id, role=role_name)
    return jsonify({'message': 'User created successfully', 'userId': user.id}), 201


def login_user():
    data = request.get_json(silent=True) or {}
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password required'}), 400

    user = User.find_by_email(data['email'])
    if user and user.account_locked and user.account_locked_until and user.account_locked_until > datetime.utcnow():
        return jsonify({'error': 'Account locked due to multiple failed attempts'}), 423
    if not user or not user.check_password(data['password']):
        return jsonify({'error': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'error': 'Account deactivated'}), 403

    audit_context(user_id=user.id)
    # Identity is the user id only; no PII in the token payload
    access_token = create_access_token(
        identity=str(user.id), additional_claims={'role': user.role.name}
    )
    refresh_token = create_refresh_token(identity=str(user.id))

    return jsonify({
        'accessToken': access_token,
        'refreshToken': refresh_token,
        'user': user.to_dict(),
    }), 200


def logout_user():
    claims = get_jwt()
    revoked_token = RevokedToken(jti=claims['jti'], expires_at=datetime.utcfromtimestamp(claims['exp']))
    db.session.add(revoked_token)
    db.session.commit()
    return jsonify({'message': 'Successfully logged out'}), 200


def refresh_token():
    user = db.session.get(User, current_user_id())
    if not user or not user.is_active:
        return jsonify({'error': 'User not found or inactive'}), 403

    access_token = create_access_token(
        identity=str(user.id), additional_claims={'role': user.role.name}
    )
    return jsonify({'accessToken': access_token}), 200


def get_current_user():
    user = db.session.get(User, current_user_id())
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify({'user': user.to_dict()}), 200
