from datetime import datetime
from flask import request, jsonify, current_app
from app.extensions import db
from app.models.form_models import Submission
from app.models.patient_profile_models import PatientProfile
from app.services.consent import submission_consent_status
from app.services.profile_reconciliation import merge_missing, sync_fields
from app.utils.decorators import audit_context, current_user_id


def get_profile():
    profile = PatientProfile.for_user(current_user_id())
    if not profile:
        return jsonify({'profile': {'data': {}}}), 200
    return jsonify({'profile': profile.to_dict()}), 200


def update_profile():
    """Per-field overwrite of profile values; keys absent from the body are left alone."""
    body = request.get_json(silent=True) or {}
    updates = body.get('data')
    if not isinstance(updates, dict):
        return jsonify({'error': 'data must be an object'}), 400

    try:
        profile = PatientProfile.for_user(current_user_id(), create=True)
        merged = profile.data
        merged.update(updates)
        profile.data = merged
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update profile")
        return jsonify({'error': 'Failed to update profile'}), 500

    audit_context(resource_id=profile.id, fieldsUpdated=sorted(updates))
    return jsonify({'profile': profile.to_dict()}), 200


def sync_profile():
    """Copies the fields the patient picked from one of their submissions into the profile."""
    body = request.get_json(silent=True) or {}
    submission_id = body.get('submissionId')
    field_names = body.get('fields')
    if not submission_id or not isinstance(field_names, list) or not field_names:
        return jsonify({'error': 'submissionId and fields are required'}), 400

    user_id = current_user_id()
    submission = db.session.get(Submission, submission_id)
    if not submission:
        return jsonify({'error': 'Submission not found'}), 404
    if submission.user_id != user_id:
        return jsonify({'error': 'Forbidden'}), 403

    try:
        profile = PatientProfile.for_user(user_id, create=True)
        submitted = submission.data
        profile.data = sync_fields(profile.data, submitted, field_names)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to sync profile from submission {submission_id}")
        return jsonify({'error': 'Failed to sync profile'}), 500

    synced = [name for name in field_names if name in submitted]
    audit_context(resource_id=profile.id, submissionId=submission.id, fieldsSynced=synced)
    return jsonify({'success': True, 'syncedFields': synced, 'profile': profile.to_dict()}), 200


def link_submission():
    """Claims anonymous submissions for the caller and fills profile gaps from the newest one."""
    body = request.get_json(silent=True) or {}
    token = body.get('anonymousToken')
    if not token:
        return jsonify({'error': 'anonymousToken is required'}), 400

    user_id = current_user_id()
    submissions = Submission.query.filter(
        Submission.anonymous_token == token,
        Submission.user_id.is_(None),
    ).order_by(Submission.created_at.desc()).all()
    if not submissions:
        return jsonify({'error': 'No submissions found for this token'}), 404

    try:
        for submission in submissions:
            submission.user_id = user_id
            submission.anonymous_token = None

        newest = submissions[0]
        profile = PatientProfile.for_user(user_id, create=True)
        before = profile.data
        merged = merge_missing(before, newest.data)
        profile.data = merged
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to link anonymous submission")
        return jsonify({'error': 'Failed to link submission'}), 500

    new_fields = sum(1 for key, value in merged.items() if before.get(key) != value)
    audit_context(resource_id=newest.id, submissionsLinked=len(submissions),
                  newFieldsSynced=new_fields, submissionIds=[s.id for s in submissions])
    return jsonify({
        'success': True,
        'linked': {
            'submissionCount': len(submissions),
            'newFieldsSynced': new_fields,
            'mostRecentSubmissionId': newest.id,
        },
        'profile': profile.to_dict(),
    }), 200


def list_submissions():
    submissions = Submission.query.filter_by(user_id=current_user_id()).order_by(
        Submission.created_at.desc()
    ).all()
    results = []
    for submission in submissions:
        item = submission.to_dict()
        item['formTitle'] = submission.form_template.title
        item['organizationName'] = submission.form_template.organization.name
        item['consentStatus'] = submission_consent_status(submission)
        results.append(item)
    return jsonify({'submissions': results}), 200


def withdraw_consent(submission_id):
    submission = db.session.get(Submission, submission_id)
    if not submission:
        return jsonify({'error': 'Submission not found'}), 404
    if submission.user_id != current_user_id():
        return jsonify({'error': 'Forbidden'}), 403
    if not submission.consent_given:
        return jsonify({'error': 'Consent was never given for this submission'}), 400
    if submission.consent_withdrawn_at:
        return jsonify({'error': 'Consent has already been withdrawn'}), 400

    try:
        submission.consent_withdrawn_at = datetime.utcnow()
        submission.auto_renew = False
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to withdraw consent for submission {submission_id}")
        return jsonify({'error': 'Failed to withdraw consent'}), 500

    audit_context(resource_id=submission.id, organization_id=submission.organization_id)
    return jsonify({
        'success': True,
        'consentStatus': submission_consent_status(submission),
    }), 200
