from functools import wraps
from flask import request, current_app, jsonify, make_response, g
from app.models.system_models import AuditLog
from app.extensions import db
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from sqlalchemy.exc import SQLAlchemyError
from app.models.user_models import User
from app.models.organization_models import Member


def client_ip():
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr


def current_user_id():
    identity = get_jwt_identity()
    return int(identity) if identity is not None else None


def audit_context(resource_id=None, organization_id=None, action=None, user_id=None, **metadata):
    """Lets a controller attach details to the audit row its route is about to write."""
    context = g.setdefault('audit', {})
    if user_id is not None:
        context['user_id'] = user_id
    if resource_id is not None:
        context['resource_id'] = str(resource_id)
    if organization_id is not None:
        context['organization_id'] = organization_id
    if action is not None:
        context['action'] = action
    if metadata:
        context.setdefault('metadata', {}).update(metadata)


def _write_audit_row(action, resource_type, user_id, success):
    context = g.get('audit', {})
    action = context.get('action', action)
    resource_id = context.get('resource_id')
    if resource_id is None and request.view_args:
        # Innermost URL parameter, e.g. the qr id in /forms/<form_id>/qr/<qr_id>
        resource_id = str(list(request.view_args.values())[-1])
    log_entry = AuditLog(
        user_id=user_id,
        organization_id=context.get('organization_id'),
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        event_metadata=context.get('metadata'),
        ip_address=client_ip(),
        user_agent=(request.headers.get('User-Agent') or '')[:255],
        success=success,
    )
    db.session.add(log_entry)
    db.session.commit()
    current_app.audit_logger.info(
        f"Action='{action}', Resource='{resource_type}', ResourceID='{log_entry.resource_id}', "
        f"UserID='{user_id}', OrgID='{log_entry.organization_id}', Success='{success}'"
    )


def audit_log(action, resource_type):
    """Records the request in audit_logs for POPIA accountability."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.audit = {}
            try:
                # Identity is present only when an outer decorator verified a JWT
                user_id = current_user_id()
            except RuntimeError:
                user_id = None

            try:
                raw_response = f(*args, **kwargs)
                response = make_response(raw_response)
            except Exception as e:
                try:
                    _write_audit_row(action, resource_type, user_id, False)
                except SQLAlchemyError as db_error:
                    db.session.rollback()
                    current_app.audit_logger.error(f"Failed to log audit entry due to DB error: {db_error}")
                current_app.audit_logger.error(
                    f"Action='{action}', Resource='{resource_type}', UserID='{user_id}', Success='False', Details='{e}'"
                )
                raise

            if user_id is None:
                user_id = g.get('audit', {}).get('user_id')
            try:
                _write_audit_row(action, resource_type, user_id, response.status_code < 400)
            except SQLAlchemyError as db_error:
                db.session.rollback()
                current_app.audit_logger.error(f"Failed to log audit entry due to DB error: {db_error}")
            return response

        return decorated_function
    return decorator


def require_permission(resource, action):
    """Checks if the authenticated user has permission to perform an action on a resource."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            user = db.session.get(User, current_user_id())

            if not user or not user.is_active:
                return jsonify({'error': 'User not found or inactive'}), 403

            if user.role.name == 'admin':
                return f(*args, **kwargs)

            has_permission = any(
                p.resource == resource and p.action == action
                for p in user.role.permissions
            )

            if not has_permission:
                return jsonify({'error': 'Permission denied'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_membership(owner_only=False):
    """Loads the caller's organization membership into ``g.member``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            member = Member.query.filter_by(user_id=current_user_id()).order_by(Member.id).first()
            if not member:
                return jsonify({'error': 'No organization found'}), 404
            if owner_only and not member.is_owner:
                return jsonify({'error': 'Only the organization owner can do this'}), 403
            g.member = member
            g.organization = member.organization
            audit_context(organization_id=member.organization_id)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
