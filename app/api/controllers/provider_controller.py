import re
import time
from datetime import datetime
from flask import request, jsonify, current_app, g
from sqlalchemy import or_
from app.extensions import db
from app.models.user_models import User
from app.models.organization_models import (
    Organization, Member, PendingProviderRegistration, ORGANIZATION_STATUSES, ORGANIZATION_TEXT_FIELDS,
    registration_expiry,
)
from app.utils.decorators import audit_context, current_user_id
from app.utils.email_util import send_provider_approved_email, send_provider_rejected_email

REGISTRATION_REQUIRED = ('practiceName', 'phone', 'industryType', 'address', 'city', 'postalCode')
PROVIDER_SORT_COLUMNS = {
    'createdAt': Organization.created_at,
    'name': Organization.name,
    'status': Organization.status,
}


def _camel(snake):
    head, *rest = snake.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def _clean(value):
    if value is None:
        return None
    return str(value).strip() or None


def slugify(name):
    return re.sub(r'(^-|-$)', '', re.sub(r'[^a-z0-9]+', '-', name.lower()))


def save_registration():
    """Stages practice details at signup, before the owner has verified their account."""
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    if not email:
        return jsonify({'error': 'Email is required'}), 400
    if any(not _clean(data.get(key)) for key in REGISTRATION_REQUIRED):
        return jsonify({'error': 'Missing required fields'}), 400

    user = User.find_by_email(email)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    try:
        pending = PendingProviderRegistration.query.filter_by(user_id=user.id).first()
        if pending is None:
            pending = PendingProviderRegistration(user_id=user.id)
            db.session.add(pending)
        pending.practice_name = _clean(data['practiceName'])
        pending.practice_number = _clean(data.get('practiceNumber'))
        pending.phone = _clean(data['phone'])
        pending.industry_type = _clean(data['industryType'])
        pending.website = _clean(data.get('website'))
        pending.complex_name = _clean(data.get('complexName'))
        pending.unit_number = _clean(data.get('unitNumber'))
        pending.street_address = _clean(data['address'])
        pending.suburb = _clean(data.get('suburb'))
        pending.city = _clean(data['city'])
        pending.province = _clean(data.get('province'))
        pending.postal_code = _clean(data['postalCode'])
        pending.expires_at = registration_expiry()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save pending registration")
        return jsonify({'error': 'Failed to save registration'}), 500

    audit_context(resource_id=pending.id, user_id=user.id)
    return jsonify({'success': True}), 200


def complete_registration():
    """Creates the pending organization and makes the caller its owner."""
    user_id = current_user_id()
    existing = Member.query.filter_by(user_id=user_id).first()
    if existing:
        return jsonify({
            'success': True,
            'organizationId': existing.organization_id,
            'alreadyRegistered': True,
        }), 200

    data = request.get_json(silent=True) or {}
    pending = PendingProviderRegistration.query.filter_by(user_id=user_id).first()
    if pending and not pending.is_expired:
        staged = {_camel(c.name): getattr(pending, c.name) for c in PendingProviderRegistration.__table__.columns}
        data = {**{k: v for k, v in staged.items() if v is not None}, **data}

    practice_name = _clean(data.get('practiceName'))
    street_address = _clean(data.get('streetAddress') or data.get('address'))
    if not practice_name or not _clean(data.get('phone')) or not _clean(data.get('industryType')) \
            or not street_address or not _clean(data.get('city')) or not _clean(data.get('postalCode')):
        return jsonify({'error': 'Missing required fields'}), 400

    base_slug = slugify(practice_name) or 'practice'
    slug = base_slug
    if Organization.query.filter_by(slug=base_slug).first():
        slug = f'{base_slug}-{int(time.time() * 1000)}'

    try:
        organization = Organization(
            name=practice_name,
            slug=slug,
            status='pending',
            practice_number=_clean(data.get('practiceNumber')),
            phone=_clean(data.get('phone')),
            industry_type=_clean(data.get('industryType')),
            website=_clean(data.get('website')),
            complex_name=_clean(data.get('complexName')),
            unit_number=_clean(data.get('unitNumber')),
            street_address=street_address,
            suburb=_clean(data.get('suburb')),
            city=_clean(data.get('city')),
            province=_clean(data.get('province')),
            postal_code=_clean(data.get('postalCode')),
            country=_clean(data.get('country')) or 'South Africa',
        )
        db.session.add(organization)
        db.session.flush()
        db.session.add(Member(user_id=user_id, organization_id=organization.id, role='owner'))
        if pending:
            db.session.delete(pending)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete provider registration")
        return jsonify({'error': 'Failed to complete registration'}), 500

    audit_context(resource_id=organization.id, organization_id=organization.id, name=organization.name)
    return jsonify({'success': True, 'organizationId': organization.id}), 201


def get_settings():
    return jsonify({
        'organization': g.organization.to_dict(),
        'role': g.member.role,
    }), 200


def update_settings():
    """Owner-only edit of practice details; blank optional strings become NULL."""
    organization = g.organization
    data = request.get_json(silent=True) or {}
    changes = {}

    if 'name' in data:
        name = _clean(data['name'])
        if not name:
            return jsonify({'error': 'Practice name cannot be empty'}), 400
        changes['name'] = name
    for column in ORGANIZATION_TEXT_FIELDS:
        key = _camel(column)
        if key in data:
            changes[column] = _clean(data[key])
    for key in ('lat', 'lng'):
        if key in data:
            value = data[key]
            if value is None or value == '':
                changes[key] = None
                continue
            try:
                changes[key] = float(value)
            except (TypeError, ValueError):
                return jsonify({'error': f'{key} must be a number'}), 400

    if not changes:
        return jsonify({'error': 'No valid fields to update'}), 400

    try:
        for column, value in changes.items():
            setattr(organization, column, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to update organization {organization.id}")
        return jsonify({'error': 'Failed to update settings'}), 500

    audit_context(resource_id=organization.id, updatedFields=sorted(_camel(c) for c in changes))
    return jsonify({'organization': organization.to_dict()}), 200


def list_providers():
    try:
        page = max(1, request.args.get('page', 1, type=int) or 1)
        limit = min(100, max(1, request.args.get('limit', 20, type=int) or 20))
        query = Organization.query

        status = request.args.get('status')
        if status in ORGANIZATION_STATUSES:
            query = query.filter(Organization.status == status)
        search = (request.args.get('search') or '').strip()
        if search:
            pattern = f'%{search}%'
            query = query.filter(or_(Organization.name.ilike(pattern), Organization.practice_number.ilike(pattern)))

        column = PROVIDER_SORT_COLUMNS.get(request.args.get('sortBy'), Organization.created_at)
        descending = request.args.get('sortOrder', 'desc') != 'asc'
        pagination = query.order_by(column.desc() if descending else column.asc()).paginate(
            page=page, per_page=limit, error_out=False
        )

        providers = []
        for org in pagination.items:
            item = org.to_dict()
            item['memberCount'] = len(org.members)
            item['formCount'] = org.form_templates.count()
            providers.append(item)

        return jsonify({
            'data': providers,
            'pagination': {
                'page': page,
                'limit': limit,
                'totalCount': pagination.total,
                'totalPages': pagination.pages,
                'hasNextPage': pagination.has_next,
                'hasPrevPage': pagination.has_prev,
            },
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list providers")
        return jsonify({'error': 'Failed to fetch providers'}), 500


def get_provider(org_id):
    organization = db.session.get(Organization, org_id)
    if not organization:
        return jsonify({'error': 'Provider not found'}), 404
    data = organization.to_dict()
    data['members'] = [
        {'userId': m.user_id, 'role': m.role, 'email': m.user.plain_email, 'name': m.user.plain_name}
        for m in organization.members
    ]
    data['formCount'] = organization.form_templates.count()
    return jsonify({'data': data}), 200


def _owner_email(organization):
    owner = next((m for m in organization.members if m.is_owner), None)
    return owner.user.plain_email if owner else None


def approve_provider(org_id):
    organization = db.session.get(Organization, org_id)
    if not organization:
        return jsonify({'error': 'Provider not found'}), 404
    if organization.status == 'approved':
        return jsonify({'error': 'Provider is already approved'}), 400

    previous = organization.status
    try:
        organization.status = 'approved'
        organization.approved_at = datetime.utcnow()
        organization.approved_by = current_user_id()
        organization.rejection_reason = None
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to approve provider {org_id}")
        return jsonify({'error': 'Failed to approve provider'}), 500

    owner_email = _owner_email(organization)
    if owner_email:
        send_provider_approved_email(owner_email, organization.name)

    audit_context(resource_id=organization.id, organization_id=organization.id,
                  providerName=organization.name, previousStatus=previous)
    return jsonify({'success': True, 'data': organization.to_dict()}), 200


def reject_provider(org_id):
    data = request.get_json(silent=True) or {}
    reason = data.get('reason')
    if not isinstance(reason, str) or not reason.strip():
        return jsonify({'error': 'Rejection reason is required'}), 400

    organization = db.session.get(Organization, org_id)
    if not organization:
        return jsonify({'error': 'Provider not found'}), 404
    if organization.status == 'rejected':
        return jsonify({'error': 'Provider is already rejected'}), 400

    previous = organization.status
    try:
        organization.status = 'rejected'
        organization.rejection_reason = reason.strip()
        organization.approved_at = None
        organization.approved_by = None
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to reject provider {org_id}")
        return jsonify({'error': 'Failed to reject provider'}), 500

    owner_email = _owner_email(organization)
    if owner_email:
        send_provider_rejected_email(owner_email, organization.name, organization.rejection_reason)

    audit_context(resource_id=organization.id, organization_id=organization.id,
                  providerName=organization.name, previousStatus=previous,
                  rejectionReason=organization.rejection_reason)
    return jsonify({'success': True, 'data': organization.to_dict()}), 200
