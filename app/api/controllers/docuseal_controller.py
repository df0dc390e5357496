import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from flask import request, jsonify, current_app, g
from app.extensions import db
from app.models.form_models import Submission
from app.models.user_models import User
from app.api.controllers.form_controller import load_owned_form
from app.utils.decorators import audit_context, current_user_id
from app.utils.docuseal_client import DocuSealClient, DocuSealError, map_field_values

# Anonymous submitters may open signing without their token for this long
ANONYMOUS_SIGNING_WINDOW = timedelta(minutes=30)


def _approved_form(form_id):
    if not g.organization.is_approved:
        return None, (jsonify({'error': 'Organization must be approved'}), 403)
    return load_owned_form(form_id)


def get_docuseal_config(form_id):
    form, error = _approved_form(form_id)
    if error:
        return error

    docuseal_fields = []
    if form.docuseal_template_id:
        try:
            docuseal_fields = DocuSealClient.get_template_fields(form.docuseal_template_id)
        except DocuSealError as e:
            current_app.logger.error(f"Failed to fetch DocuSeal template fields for form {form_id}: {e}")

    return jsonify({
        'pdfEnabled': form.pdf_enabled,
        'docusealTemplateId': form.docuseal_template_id,
        'fieldMappings': form.pdf_field_mappings or {},
        'formFields': [{'name': ff.field_definition.name, 'label': ff.display_label} for ff in form.fields],
        'docusealFields': docuseal_fields,
    }), 200


def update_docuseal_config(form_id):
    form, error = _approved_form(form_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    pdf_enabled = data.get('pdfEnabled')
    if 'pdfEnabled' in data and not isinstance(pdf_enabled, bool):
        return jsonify({'error': 'pdfEnabled must be a boolean'}), 400
    template_id = data.get('docusealTemplateId')
    if template_id is not None and (isinstance(template_id, bool) or not isinstance(template_id, int) or template_id <= 0):
        return jsonify({'error': 'docusealTemplateId must be a positive number'}), 400
    mappings = data.get('fieldMappings')
    if mappings is not None and not isinstance(mappings, dict):
        return jsonify({'error': 'fieldMappings must be an object'}), 400

    try:
        if 'pdfEnabled' in data:
            form.pdf_enabled = pdf_enabled
        if 'docusealTemplateId' in data:
            form.docuseal_template_id = template_id
        if 'fieldMappings' in data:
            form.pdf_field_mappings = mappings or None
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to update DocuSeal config for form {form_id}")
        return jsonify({'error': 'Failed to update DocuSeal configuration'}), 500

    audit_context(resource_id=form.id, pdfEnabled=form.pdf_enabled,
                  docusealTemplateId=form.docuseal_template_id)
    return jsonify({
        'success': True,
        'pdfEnabled': form.pdf_enabled,
        'docusealTemplateId': form.docuseal_template_id,
        'fieldMappings': form.pdf_field_mappings or {},
    }), 200


def start_signing(submission_id):
    """Opens a DocuSeal signing session for a submission on a PDF-enabled form."""
    submission = db.session.get(Submission, submission_id)
    if not submission:
        return jsonify({'error': 'Submission not found'}), 404

    user_id = current_user_id()
    body = request.get_json(silent=True) or {}
    if user_id is not None:
        if submission.user_id != user_id:
            return jsonify({'error': 'Forbidden'}), 403
    else:
        token = body.get('anonymousToken')
        valid_token = bool(token) and submission.anonymous_token == token
        recent = (
            submission.user_id is None
            and submission.created_at is not None
            and datetime.utcnow() - submission.created_at < ANONYMOUS_SIGNING_WINDOW
        )
        if not valid_token and not recent:
            return jsonify({'error': 'Invalid token or session expired'}), 403

    form = submission.form_template
    if not form.pdf_enabled:
        return jsonify({'error': 'PDF signing is not enabled for this form'}), 400
    if not form.docuseal_template_id:
        return jsonify({'error': 'No PDF template configured for this form'}), 400

    data = submission.data
    email = data.get('email')
    name = None
    if user_id is not None:
        user = db.session.get(User, user_id)
        email = user.plain_email
        name = user.plain_name
    if not email:
        return jsonify({'error': 'An email address is required to sign'}), 400

    try:
        result = DocuSealClient.create_submission(
            form.docuseal_template_id,
            email,
            map_field_values(form.pdf_field_mappings, data),
            name=name,
            external_id=str(submission.id),
        )
        submission.docuseal_submission_id = result['submissionId']
        db.session.commit()
    except DocuSealError as e:
        db.session.rollback()
        current_app.logger.error(f"Could not start signing for submission {submission_id}: {e}")
        return jsonify({'error': 'Failed to create signing session'}), 502

    audit_context(resource_id=submission.id, organization_id=submission.organization_id,
                  docusealSubmissionId=result['submissionId'])
    return jsonify({
        'success': True,
        'submissionId': result['submissionId'],
        'signingUrl': result['embedUrl'],
    }), 200


def _valid_webhook_signature(raw_body, signature):
    secret = current_app.config.get('DOCUSEAL_WEBHOOK_SECRET')
    if not secret:
        return True
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature or '', expected)


def _parse_completed_at(value):
    if not value:
        return datetime.utcnow()
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        return datetime.utcnow()
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _find_signed_submission(data):
    submission = None
    external_id = data.get('external_id')
    if isinstance(external_id, str) and external_id.isdigit():
        submission = db.session.get(Submission, int(external_id))
    if not submission and data.get('submission_id') is not None:
        submission = Submission.query.filter_by(docuseal_submission_id=data['submission_id']).first()
    return submission


def handle_webhook():
    """
    Receives DocuSeal events. ``form.completed`` marks the matching
    submission as signed; other events are acknowledged and ignored.
    """
    raw_body = request.get_data()
    if not _valid_webhook_signature(raw_body, request.headers.get('X-DocuSeal-Signature')):
        current_app.logger.warning("DocuSeal webhook signature verification failed")
        return jsonify({'error': 'Invalid signature'}), 401

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    event_type = payload.get('event_type')
    data = payload.get('data') or {}
    audit_context(eventType=event_type, docusealSubmissionId=data.get('submission_id'))
    if event_type != 'form.completed':
        current_app.logger.info(f"Ignoring DocuSeal event {event_type}")
        return jsonify({'received': True}), 200

    submission = _find_signed_submission(data)
    if not submission:
        current_app.logger.error(f"No submission found for DocuSeal submission {data.get('submission_id')}")
        return jsonify({'error': 'Submission not found'}), 404

    documents = data.get('documents') or []
    try:
        submission.signed_at = _parse_completed_at(data.get('completed_at'))
        submission.signed_document_url = documents[0].get('url') if documents else None
        submission.status = 'completed'
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to record signature for submission {submission.id}")
        return jsonify({'error': 'Webhook processing failed'}), 500

    audit_context(resource_id=submission.id, organization_id=submission.organization_id)
    return jsonify({'received': True, 'submissionId': submission.id}), 200
