from datetime import datetime, timedelta
from flask import request, jsonify, current_app, g
from app.extensions import db
from app.models.form_models import FormTemplate, Submission
from app.models.user_models import User
from app.services.consent import submission_consent_status
from app.utils.decorators import audit_context

# Query value -> computed consent statuses it selects
CONSENT_FILTERS = {
    'active': ('ACTIVE',),
    'expiring': ('EXPIRING',),
    'expired': ('GRACE', 'EXPIRED'),
    'withdrawn': ('WITHDRAWN',),
}
SUMMARY_KEYS = {
    'ACTIVE': 'active', 'EXPIRING': 'expiring', 'GRACE': 'grace',
    'EXPIRED': 'expired', 'WITHDRAWN': 'withdrawn', 'NEVER_GIVEN': 'neverGiven',
}
# Consent that was given and then ended hides the answers
HIDDEN_STATUSES = ('WITHDRAWN', 'EXPIRED')


class SubmissionFilterError(ValueError):
    pass


def _parse_day(value, name):
    try:
        return datetime.strptime(value, '%Y-%m-%d')
    except ValueError as e:
        raise SubmissionFilterError(f'{name} must be a YYYY-MM-DD date') from e


def _filtered_query():
    query = Submission.query.filter_by(organization_id=g.member.organization_id)

    form_id = request.args.get('formId')
    if form_id:
        if not form_id.isdigit():
            raise SubmissionFilterError('formId must be an integer')
        query = query.filter(Submission.form_template_id == int(form_id))
    status = request.args.get('status')
    if status:
        query = query.filter(Submission.status == status)
    patient_type = request.args.get('patientType')
    if patient_type == 'registered':
        query = query.filter(Submission.user_id.isnot(None))
    elif patient_type == 'anonymous':
        query = query.filter(Submission.user_id.is_(None))
    date_from = request.args.get('dateFrom')
    if date_from:
        query = query.filter(Submission.created_at >= _parse_day(date_from, 'dateFrom'))
    date_to = request.args.get('dateTo')
    if date_to:
        query = query.filter(Submission.created_at < _parse_day(date_to, 'dateTo') + timedelta(days=1))
    return query


def _patient(submission, users, visible):
    if not visible:
        return {'patientName': None, 'patientEmail': None, 'isAnonymous': submission.user_id is None}
    data = submission.data
    user = users.get(submission.user_id)
    if user:
        name = user.plain_name
    elif data.get('firstName') and data.get('lastName'):
        name = f"{data['firstName']} {data['lastName']}"
    else:
        name = data.get('firstName') or data.get('fullName')
    return {
        'patientName': name or None,
        'patientEmail': user.plain_email if user else data.get('email'),
        'isAnonymous': submission.user_id is None,
    }


def _users_for(submissions):
    ids = {s.user_id for s in submissions if s.user_id}
    if not ids:
        return {}
    return {u.id: u for u in User.query.filter(User.id.in_(ids))}


def list_submissions():
    """Submissions collected by the caller's organization, newest first."""
    try:
        page = max(1, request.args.get('page', 1, type=int) or 1)
        limit = min(100, max(1, request.args.get('limit', 20, type=int) or 20))
        consent_filter = request.args.get('consentStatus')
        if consent_filter and consent_filter not in CONSENT_FILTERS:
            return jsonify({'error': f"consentStatus must be one of: {', '.join(CONSENT_FILTERS)}"}), 400

        pagination = _filtered_query().order_by(Submission.created_at.desc()).paginate(
            page=page, per_page=limit, error_out=False
        )
        users = _users_for(pagination.items)

        results = []
        for submission in pagination.items:
            item = submission.to_dict()
            item['formTitle'] = submission.form_template.title
            consent = submission_consent_status(submission)
            visible = consent['status'] not in HIDDEN_STATUSES
            item.update(_patient(submission, users, visible))
            item['consentStatus'] = consent
            results.append(item)

        summary = dict.fromkeys(SUMMARY_KEYS.values(), 0)
        for item in results:
            summary[SUMMARY_KEYS[item['consentStatus']['status']]] += 1
        # Consent status is computed, so it filters the current page only
        if consent_filter:
            wanted = CONSENT_FILTERS[consent_filter]
            results = [item for item in results if item['consentStatus']['status'] in wanted]

        forms = FormTemplate.query.filter_by(organization_id=g.member.organization_id).order_by(
            FormTemplate.title.asc()
        ).all()
        return jsonify({
            'submissions': results,
            'forms': [{'id': f.id, 'title': f.title} for f in forms],
            'consentSummary': summary,
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'totalPages': pagination.pages,
            },
        }), 200
    except SubmissionFilterError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list submissions")
        return jsonify({'error': 'Failed to list submissions'}), 500


def get_submission(submission_id):
    """
    One submission with its answers laid out by section.

    Answers are hidden once consent has been withdrawn or has fully expired;
    the submission metadata stays visible.
    """
    submission = db.session.get(Submission, submission_id)
    if not submission:
        return jsonify({'error': 'Submission not found'}), 404
    if submission.organization_id != g.member.organization_id:
        return jsonify({'error': 'Forbidden'}), 403

    form = submission.form_template
    consent = submission_consent_status(submission)
    visible = consent['status'] not in HIDDEN_STATUSES
    data = submission.data if visible else {}

    fields = []
    sections = {}
    for ff in form.fields:
        name = ff.field_definition.name
        entry = {
            'id': ff.id,
            'name': name,
            'label': ff.display_label,
            'type': ff.field_definition.field_type,
            'section': ff.section,
            'value': data.get(name),
            'isRequired': ff.is_required,
        }
        fields.append(entry)
        sections.setdefault(ff.section or 'General', []).append(entry)

    result = submission.to_dict()
    result.update(_patient(submission, _users_for([submission]), visible))
    result['formTitle'] = form.title
    result['consentStatus'] = consent
    result['source'] = submission.source
    result['pdfSigning'] = {
        'hasPdf': submission.docuseal_submission_id is not None,
        'docusealSubmissionId': submission.docuseal_submission_id,
        'isSigned': submission.signed_at is not None,
        'signedAt': submission.signed_at.isoformat() if submission.signed_at else None,
        'signedDocumentUrl': submission.signed_document_url,
    }

    audit_context(resource_id=submission.id, formTemplateId=form.id, formTitle=form.title,
                  dataVisible=visible)
    return jsonify({
        'submission': result,
        'fields': fields,
        'sections': sections,
        'rawData': data if visible else None,
    }), 200
