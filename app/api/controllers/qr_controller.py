from flask import request, jsonify, current_app
from app.extensions import db
from app.models.form_models import QRCode
from app.api.controllers.form_controller import load_owned_form
from app.utils.decorators import audit_context, current_user_id
from app.utils.qr_util import MAX_SHORT_CODE_ATTEMPTS, build_form_url, generate_short_code, qr_images


def _with_url(qr):
    data = qr.to_dict()
    data['formUrl'] = build_form_url(qr.short_code)
    return data


def _load_owned_qr(form_id, qr_id):
    form, error = load_owned_form(form_id)
    if error:
        return None, None, error
    qr = db.session.get(QRCode, qr_id)
    if not qr:
        return form, None, (jsonify({'error': 'QR code not found'}), 404)
    if qr.form_template_id != form.id:
        return form, None, (jsonify({'error': 'QR code does not belong to this form'}), 400)
    return form, qr, None


def _unique_short_code():
    for _ in range(MAX_SHORT_CODE_ATTEMPTS):
        code = generate_short_code()
        if not QRCode.query.filter_by(short_code=code).first():
            return code
    return None


def list_qr_codes(form_id):
    form, error = load_owned_form(form_id)
    if error:
        return error
    codes = form.qr_codes.order_by(QRCode.created_at.desc()).all()
    return jsonify({'qrCodes': [_with_url(qr) for qr in codes]}), 200


def create_qr_code(form_id):
    form, error = load_owned_form(form_id)
    if error:
        return error
    if not form.is_active:
        return jsonify({'error': 'Cannot create a QR code for an inactive form'}), 400

    data = request.get_json(silent=True) or {}
    short_code = _unique_short_code()
    if not short_code:
        current_app.logger.error(f"Could not allocate a unique short code for form {form_id}")
        return jsonify({'error': 'Failed to generate unique short code'}), 500

    try:
        qr = QRCode(
            form_template_id=form.id,
            short_code=short_code,
            label=(data.get('label') or '').strip() or None,
            is_active=True,
            created_by=current_user_id(),
        )
        db.session.add(qr)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to create QR code for form {form_id}")
        return jsonify({'error': 'Failed to create QR code'}), 500

    audit_context(resource_id=qr.id, formTemplateId=form.id, shortCode=short_code)
    return jsonify({'qrCode': {**_with_url(qr), **qr_images(short_code)}}), 201


def get_qr_code(form_id, qr_id):
    form, qr, error = _load_owned_qr(form_id, qr_id)
    if error:
        return error
    return jsonify({'qrCode': {**_with_url(qr), **qr_images(qr.short_code)}}), 200


def update_qr_code(form_id, qr_id):
    form, qr, error = _load_owned_qr(form_id, qr_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('isActive'), bool):
        return jsonify({'error': 'isActive must be a boolean'}), 400

    try:
        qr.is_active = data['isActive']
        if 'label' in data:
            qr.label = (data.get('label') or '').strip() or None
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to update QR code {qr_id}")
        return jsonify({'error': 'Failed to update QR code'}), 500

    audit_context(resource_id=qr.id, formTemplateId=form.id, isActive=qr.is_active)
    return jsonify({'qrCode': _with_url(qr)}), 200


def delete_qr_code(form_id, qr_id):
    """QR codes are only ever deactivated; printed codes must keep resolving to a 410."""
    form, qr, error = _load_owned_qr(form_id, qr_id)
    if error:
        return error

    try:
        qr.is_active = False
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to deactivate QR code {qr_id}")
        return jsonify({'error': 'Failed to delete QR code'}), 500

    audit_context(resource_id=qr.id, formTemplateId=form.id, shortCode=qr.short_code)
    return jsonify({'success': True, 'deactivated': True}), 200
