import secrets
from flask import request, jsonify, current_app
from app.extensions import db
from app.models.form_models import QRCode, Submission
from app.models.patient_profile_models import PatientProfile
from app.services import checkin_flow
from app.services.consent import ConsentDurationError, resolve_consent_terms
from app.services.form_layout import build_layout, section_order
from app.services.form_validation import missing_labels, validate_submission
from app.services.profile_reconciliation import compute_profile_diff, prefill_for_form
from app.utils.decorators import audit_context, client_ip, current_user_id


def _resolve_short_code(short_code):
    """Returns ``(qr, None)`` for a usable code, else ``(None, error_response)``."""
    qr = QRCode.query.filter_by(short_code=short_code).first()
    if not qr:
        return None, (jsonify({'error': 'Invalid QR code', 'code': 'QR_NOT_FOUND'}), 404)
    if not qr.is_active:
        return None, (jsonify({'error': 'QR code deactivated', 'code': 'QR_INACTIVE'}), 410)
    if not qr.form_template.is_active:
        return None, (jsonify({'error': 'Form deactivated', 'code': 'FORM_INACTIVE'}), 410)
    return qr, None


def get_public_form(short_code):
    qr, error = _resolve_short_code(short_code)
    if error:
        return error

    form = qr.form_template
    try:
        qr.record_scan()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to record scan for {short_code}")

    fields = [ff.to_dict() for ff in form.fields]
    user_id = current_user_id()
    prefill = {}
    if user_id is not None:
        profile = PatientProfile.for_user(user_id)
        if profile:
            prefill = prefill_for_form(profile.data, [f['name'] for f in fields])

    organization = form.organization
    return jsonify({
        'form': {
            'id': form.id,
            'title': form.title,
            'description': form.description,
            'consentClause': form.consent_clause,
            'version': form.version,
            'sections': section_order(form.sections, fields),
            'fields': fields,
            'layout': build_layout(form.sections, fields),
            'consentConfig': form.consent_config(),
            'requiresSignature': form.requires_signature,
        },
        'organization': {
            'id': organization.id,
            'name': organization.name,
        },
        'isAuthenticated': user_id is not None,
        'prefillData': prefill,
        'flowState': checkin_flow.FORM,
    }), 200


def submit_form(short_code):
    body = request.get_json(silent=True) or {}
    data = body.get('data')
    if not isinstance(data, dict):
        return jsonify({'error': 'Form data is required'}), 400

    qr, error = _resolve_short_code(short_code)
    if error:
        return error
    form = qr.form_template

    fields = [ff.to_dict() for ff in form.fields]
    consent_given = body.get('consentGiven') is True
    errors = validate_submission(fields, data, form.consent_clause, consent_given)
    if errors:
        return jsonify({
            'error': 'Missing required fields',
            'code': 'VALIDATION_ERROR',
            'errors': errors,
            'missingFields': missing_labels(fields, errors),
        }), 400

    terms = {}
    if consent_given:
        try:
            terms = resolve_consent_terms(form, body.get('consentDurationMonths'), body.get('autoRenew'))
        except ConsentDurationError as e:
            return jsonify({'error': str(e), 'code': 'INVALID_CONSENT_DURATION'}), 400

    user_id = current_user_id()
    is_authenticated = user_id is not None
    profile_diff = None
    if is_authenticated:
        profile = PatientProfile.for_user(user_id)
        if profile:
            profile_diff = compute_profile_diff(fields, data, profile.data)

    try:
        submission = Submission(
            form_template_id=form.id,
            organization_id=form.organization_id,
            user_id=user_id,
            form_version=form.version,
            status='completed',
            source='web',
            consent_given=consent_given,
            consent_clause=form.consent_clause if consent_given else None,
            consent_token=secrets.token_urlsafe(24) if consent_given else None,
            consent_at=terms.get('consent_at'),
            consent_duration_months=terms.get('consent_duration_months'),
            consent_expires_at=terms.get('consent_expires_at'),
            auto_renew=terms.get('auto_renew', False),
            anonymous_token=None if is_authenticated else secrets.token_urlsafe(24),
            ip_address=client_ip(),
            user_agent=(request.headers.get('User-Agent') or '')[:255],
        )
        submission.data = data
        db.session.add(submission)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to store submission for {short_code}")
        return jsonify({'error': 'Failed to submit form'}), 500

    audit_context(
        resource_id=submission.id,
        organization_id=form.organization_id,
        formTemplateId=form.id,
        formTitle=form.title,
        isAuthenticated=is_authenticated,
        consentGiven=consent_given,
        consentDurationMonths=terms.get('consent_duration_months'),
        consentExpiresAt=terms['consent_expires_at'].isoformat() if terms else None,
        autoRenew=terms.get('auto_renew') if terms else None,
    )

    result = {
        'success': True,
        'submission': {
            'id': submission.id,
            'createdAt': submission.created_at.isoformat() if submission.created_at else None,
        },
        'requiresSignature': form.requires_signature,
        'flowState': checkin_flow.after_submit(form.requires_signature, is_authenticated, bool(profile_diff)),
    }
    if is_authenticated:
        result['profileDiff'] = profile_diff
        result['promptProfileUpdate'] = bool(profile_diff)
    else:
        result['anonymousToken'] = submission.anonymous_token
        result['promptRegistration'] = True
    return jsonify(result), 201
