from flask import request, jsonify, current_app, g
from sqlalchemy import func
from app.extensions import db
from app.models.field_models import FieldDefinition
from app.models.form_models import FormTemplate, FormField, QRCode, Submission, DEFAULT_COLUMN_SPAN
from app.services.form_layout import GRID_COLUMNS, build_layout
from app.utils.decorators import audit_context, current_user_id

CONSENT_INT_FIELDS = {
    'defaultConsentDuration': 'default_consent_duration',
    'minConsentDuration': 'min_consent_duration',
    'maxConsentDuration': 'max_consent_duration',
    'gracePeriodDays': 'grace_period_days',
}


class FormPayloadError(ValueError):
    pass


def load_owned_form(form_id):
    """
    Resolves a form for the caller's organization.

    Returns ``(form, None)`` or ``(None, error_response)``; a form owned by
    another organization is a 403, a missing one a 404.
    """
    form = db.session.get(FormTemplate, form_id)
    if not form:
        return None, (jsonify({'error': 'Form not found'}), 404)
    if form.organization_id != g.member.organization_id:
        return None, (jsonify({'error': 'Forbidden'}), 403)
    return form, None


def _optional_text(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise FormPayloadError('Expected a string')
    return value.strip() or None


def _parse_sections(value):
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
        raise FormPayloadError('sections must be a list of strings')
    ordered = []
    for section in (s.strip() for s in value):
        if section and section not in ordered:
            ordered.append(section)
    return ordered


def _parse_field_items(items):
    """Validates a ``fields`` array and returns FormField kwargs in order."""
    if not isinstance(items, list):
        raise FormPayloadError('fields must be a list')

    ids = []
    for item in items:
        if not isinstance(item, dict) or item.get('fieldDefinitionId') is None:
            raise FormPayloadError('Each field needs a fieldDefinitionId')
        ids.append(item['fieldDefinitionId'])

    known = {
        f.id for f in FieldDefinition.query.filter(FieldDefinition.id.in_(ids)).all()
    } if ids else set()
    unknown = [fid for fid in ids if fid not in known]
    if unknown:
        raise FormPayloadError(f"Unknown field definition id(s): {', '.join(str(u) for u in unknown)}")

    rows = []
    for index, item in enumerate(items):
        span = item.get('columnSpan')
        if span is None:
            span = DEFAULT_COLUMN_SPAN
        elif isinstance(span, bool) or not isinstance(span, int) or not 1 <= span <= GRID_COLUMNS:
            raise FormPayloadError(f'columnSpan must be between 1 and {GRID_COLUMNS}')
        sort_order = item.get('sortOrder')
        if sort_order is None:
            sort_order = index
        group_id = item.get('groupId')
        rows.append({
            'field_definition_id': item['fieldDefinitionId'],
            'label_override': _optional_text(item.get('labelOverride')),
            'help_text': _optional_text(item.get('helpText')),
            'is_required': bool(item.get('isRequired', False)),
            'sort_order': sort_order,
            'section': _optional_text(item.get('section')),
            'column_span': span,
            'group_id': str(group_id) if group_id not in (None, '') else None,
        })
    return rows


def _replace_fields(form, rows):
    """Swaps the whole field set. New rows are written before old ones go, so no id is reused."""
    old_fields = FormField.query.filter_by(form_template_id=form.id).all()
    for row in rows:
        db.session.add(FormField(form_template_id=form.id, **row))
    db.session.flush()
    for old in old_fields:
        db.session.delete(old)
    db.session.flush()
    db.session.expire(form, ['fields'])


def _apply_consent_settings(form, data):
    for key, column in CONSENT_INT_FIELDS.items():
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise FormPayloadError(f'{key} must be a non-negative integer')
            setattr(form, column, value)
    if 'allowAutoRenewal' in data:
        form.allow_auto_renewal = bool(data['allowAutoRenewal'])
    if form.min_consent_duration > form.max_consent_duration:
        raise FormPayloadError('minConsentDuration cannot exceed maxConsentDuration')
    if not form.min_consent_duration <= form.default_consent_duration <= form.max_consent_duration:
        raise FormPayloadError('defaultConsentDuration must lie between the minimum and maximum')


def _apply_pdf_settings(form, data):
    if 'pdfEnabled' in data:
        form.pdf_enabled = bool(data['pdfEnabled'])
    if 'docusealTemplateId' in data:
        template_id = data['docusealTemplateId']
        if template_id in (None, ''):
            form.docuseal_template_id = None
        elif isinstance(template_id, bool) or not isinstance(template_id, int) or template_id <= 0:
            raise FormPayloadError('docusealTemplateId must be a positive integer')
        else:
            form.docuseal_template_id = template_id
    if 'pdfFieldMappings' in data:
        mappings = data['pdfFieldMappings']
        if mappings is not None and not isinstance(mappings, dict):
            raise FormPayloadError('pdfFieldMappings must be an object')
        form.pdf_field_mappings = mappings or None


def _form_summary(form):
    data = form.to_dict()
    data['fieldCount'] = len(form.fields)
    data['submissionCount'] = form.submissions.count()
    data['qrCodeCount'] = form.qr_codes.count()
    return data


def list_forms():
    try:
        page = max(1, request.args.get('page', 1, type=int) or 1)
        limit = min(100, max(1, request.args.get('limit', 20, type=int) or 20))
        query = FormTemplate.query.filter_by(organization_id=g.member.organization_id)

        status = request.args.get('status', 'all')
        if status == 'active':
            query = query.filter(FormTemplate.is_active.is_(True))
        elif status == 'inactive':
            query = query.filter(FormTemplate.is_active.is_(False))
        search = (request.args.get('search') or '').strip()
        if search:
            query = query.filter(FormTemplate.title.ilike(f'%{search}%'))

        pagination = query.order_by(FormTemplate.updated_at.desc()).paginate(
            page=page, per_page=limit, error_out=False
        )
        return jsonify({
            'forms': [_form_summary(f) for f in pagination.items],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'totalPages': pagination.pages,
            },
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list forms")
        return jsonify({'error': 'Failed to list forms'}), 500


def create_form():
    data = request.get_json(silent=True) or {}
    title = data.get('title')
    if not isinstance(title, str) or not title.strip():
        return jsonify({'error': 'Title is required'}), 400

    try:
        form = FormTemplate(
            organization_id=g.member.organization_id,
            title=title.strip(),
            description=_optional_text(data.get('description')),
            consent_clause=_optional_text(data.get('consentClause')),
            sections=_parse_sections(data.get('sections')),
            version=1,
            is_active=True,
            created_by=current_user_id(),
        )
        _apply_consent_settings(form, {
            'defaultConsentDuration': 12, 'minConsentDuration': 3, 'maxConsentDuration': 60,
            'gracePeriodDays': 30, **data,
        })
        _apply_pdf_settings(form, data)
        rows = _parse_field_items(data.get('fields') or [])
    except FormPayloadError as e:
        return jsonify({'error': str(e)}), 400

    try:
        db.session.add(form)
        db.session.flush()
        for row in rows:
            db.session.add(FormField(form_template_id=form.id, **row))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create form")
        return jsonify({'error': 'Failed to create form'}), 500

    audit_context(resource_id=form.id, title=form.title, fieldCount=len(rows))
    return jsonify({'form': form.to_dict(include_fields=True)}), 201


def get_form(form_id):
    form, error = load_owned_form(form_id)
    if error:
        return error

    data = form.to_dict(include_fields=True)
    data['layout'] = build_layout(form.sections, data['fields'])
    data['qrCodes'] = [
        qr.to_dict() for qr in form.qr_codes.filter(QRCode.is_active.is_(True)).order_by(QRCode.created_at.desc())
    ]
    data['submissionCount'] = form.submissions.count()
    return jsonify({'form': data}), 200


def update_form(form_id):
    form, error = load_owned_form(form_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    try:
        if 'title' in data:
            title = data['title']
            if not isinstance(title, str) or not title.strip():
                raise FormPayloadError('Title cannot be empty')
            form.title = title.strip()
        if 'description' in data:
            form.description = _optional_text(data['description'])
        if 'consentClause' in data:
            form.consent_clause = _optional_text(data['consentClause'])
        if 'isActive' in data:
            form.is_active = bool(data['isActive'])
        if 'sections' in data:
            form.sections = _parse_sections(data['sections'])
        _apply_consent_settings(form, data)
        _apply_pdf_settings(form, data)

        rows = None
        if 'fields' in data:
            rows = _parse_field_items(data['fields'])
    except FormPayloadError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    try:
        if rows is not None:
            form.version = (form.version or 1) + 1
            _replace_fields(form, rows)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to update form {form_id}")
        return jsonify({'error': 'Failed to update form'}), 500

    audit_context(resource_id=form.id, title=form.title, version=form.version,
                  fieldsReplaced=rows is not None)
    return jsonify({'form': form.to_dict(include_fields=True)}), 200


def delete_form(form_id):
    form, error = load_owned_form(form_id)
    if error:
        return error

    has_submissions = db.session.query(func.count(Submission.id)).filter(
        Submission.form_template_id == form.id
    ).scalar() > 0
    try:
        if has_submissions:
            form.is_active = False
            audit_context(action='DEACTIVATE_FORM')
        else:
            db.session.delete(form)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to delete form {form_id}")
        return jsonify({'error': 'Failed to delete form'}), 500

    audit_context(resource_id=form_id, hadSubmissions=has_submissions)
    return jsonify({
        'success': True,
        'deleted': not has_submissions,
        'deactivated': has_submissions,
    }), 200
