from datetime import datetime
from app.extensions import db
from app.utils.encryption_util import encryptor

DEFAULT_COLUMN_SPAN = 8
DEFAULT_CONSENT_DURATION_MONTHS = 12
DEFAULT_GRACE_PERIOD_DAYS = 30


class FormTemplate(db.Model):
    """An organization's intake form: an ordered, sectioned set of library fields."""
    __tablename__ = 'form_templates'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    consent_clause = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    sections = db.Column(db.JSON)

    # Consent duration policy, in months
    default_consent_duration = db.Column(db.Integer, nullable=False, default=DEFAULT_CONSENT_DURATION_MONTHS)
    min_consent_duration = db.Column(db.Integer, nullable=False, default=3)
    max_consent_duration = db.Column(db.Integer, nullable=False, default=60)
    allow_auto_renewal = db.Column(db.Boolean, nullable=False, default=True)
    grace_period_days = db.Column(db.Integer, nullable=False, default=DEFAULT_GRACE_PERIOD_DAYS)

    # PDF signing
    pdf_enabled = db.Column(db.Boolean, nullable=False, default=False)
    docuseal_template_id = db.Column(db.Integer)
    pdf_field_mappings = db.Column(db.JSON)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = db.relationship('Organization', back_populates='form_templates')
    fields = db.relationship(
        'FormField', back_populates='form_template', cascade="all, delete-orphan",
        order_by='FormField.sort_order'
    )
    qr_codes = db.relationship('QRCode', back_populates='form_template', lazy='dynamic', cascade="all, delete-orphan")
    submissions = db.relationship('Submission', back_populates='form_template', lazy='dynamic')

    @property
    def requires_signature(self):
        return bool(self.pdf_enabled and self.docuseal_template_id)

    def consent_config(self):
        return {
            'defaultDuration': self.default_consent_duration,
            'minDuration': self.min_consent_duration,
            'maxDuration': self.max_consent_duration,
            'allowAutoRenewal': self.allow_auto_renewal,
            'gracePeriodDays': self.grace_period_days,
        }

    def to_dict(self, include_fields=False):
        data = {
            'id': self.id,
            'organizationId': self.organization_id,
            'title': self.title,
            'description': self.description,
            'consentClause': self.consent_clause,
            'isActive': self.is_active,
            'version': self.version,
            'sections': self.sections or [],
            'consentConfig': self.consent_config(),
            'pdfEnabled': self.pdf_enabled,
            'docusealTemplateId': self.docuseal_template_id,
            'pdfFieldMappings': self.pdf_field_mappings or {},
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_fields:
            data['fields'] = [ff.to_dict() for ff in self.fields]
        return data


class FormField(db.Model):
    """Placement of a library field on a template, with per-form overrides."""
    __tablename__ = 'form_fields'

    id = db.Column(db.Integer, primary_key=True)
    form_template_id = db.Column(db.Integer, db.ForeignKey('form_templates.id'), nullable=False, index=True)
    field_definition_id = db.Column(db.Integer, db.ForeignKey('field_definitions.id'), nullable=False, index=True)
    label_override = db.Column(db.String(255))
    help_text = db.Column(db.Text)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    section = db.Column(db.String(255))
    column_span = db.Column(db.Integer, nullable=False, default=DEFAULT_COLUMN_SPAN)
    group_id = db.Column(db.String(100))

    form_template = db.relationship('FormTemplate', back_populates='fields')
    field_definition = db.relationship('FieldDefinition', back_populates='form_fields')

    @property
    def display_label(self):
        return self.label_override or self.field_definition.label

    def to_dict(self):
        definition = self.field_definition
        return {
            'id': self.id,
            'fieldDefinitionId': self.field_definition_id,
            'name': definition.name,
            'label': self.display_label,
            'labelOverride': self.label_override,
            'helpText': self.help_text,
            'isRequired': self.is_required,
            'sortOrder': self.sort_order,
            'section': self.section,
            'columnSpan': self.column_span,
            'groupId': self.group_id,
            'fieldType': definition.field_type,
            'fieldDefinition': definition.to_dict(),
        }


class QRCode(db.Model):
    """A short code that resolves to a form template's public URL."""
    __tablename__ = 'qr_codes'

    id = db.Column(db.Integer, primary_key=True)
    form_template_id = db.Column(db.Integer, db.ForeignKey('form_templates.id'), nullable=False, index=True)
    short_code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    label = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    scan_count = db.Column(db.Integer, nullable=False, default=0)
    last_scanned_at = db.Column(db.DateTime)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    form_template = db.relationship('FormTemplate', back_populates='qr_codes')

    def record_scan(self):
        self.scan_count = (self.scan_count or 0) + 1
        self.last_scanned_at = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'formTemplateId': self.form_template_id,
            'shortCode': self.short_code,
            'label': self.label,
            'isActive': self.is_active,
            'scanCount': self.scan_count,
            'lastScannedAt': self.last_scanned_at.isoformat() if self.last_scanned_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Submission(db.Model):
    """A completed form. ``data`` is encrypted at rest and keyed by field name."""
    __tablename__ = 'submissions'

    id = db.Column(db.Integer, primary_key=True)
    form_template_id = db.Column(db.Integer, db.ForeignKey('form_templates.id'), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    form_version = db.Column(db.Integer)
    data_encrypted = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(30), nullable=False, default='submitted')
    source = db.Column(db.String(30), default='qr')
    consent_given = db.Column(db.Boolean, nullable=False, default=False)
    consent_at = db.Column(db.DateTime)
    consent_token = db.Column(db.String(64), unique=True)
    consent_clause = db.Column(db.Text)
    consent_duration_months = db.Column(db.Integer)
    consent_expires_at = db.Column(db.DateTime)
    consent_withdrawn_at = db.Column(db.DateTime)
    auto_renew = db.Column(db.Boolean, nullable=False, default=False)
    anonymous_token = db.Column(db.String(64), unique=True, index=True)
    docuseal_submission_id = db.Column(db.Integer, index=True)
    signed_at = db.Column(db.DateTime)
    signed_document_url = db.Column(db.String(500))
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    form_template = db.relationship('FormTemplate', back_populates='submissions')

    @property
    def data(self):
        return encryptor.decrypt_json(self.data_encrypted)

    @data.setter
    def data(self, value):
        self.data_encrypted = encryptor.encrypt_json(value)

    def to_dict(self, include_data=False):
        result = {
            'id': self.id,
            'formTemplateId': self.form_template_id,
            'organizationId': self.organization_id,
            'userId': self.user_id,
            'formVersion': self.form_version,
            'status': self.status,
            'consentGiven': self.consent_given,
            'consentAt': self.consent_at.isoformat() if self.consent_at else None,
            'consentExpiresAt': self.consent_expires_at.isoformat() if self.consent_expires_at else None,
            'consentDurationMonths': self.consent_duration_months,
            'autoRenew': self.auto_renew,
            'signedAt': self.signed_at.isoformat() if self.signed_at else None,
            'signedDocumentUrl': self.signed_document_url,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if include_data:
            result['data'] = self.data
        return result
