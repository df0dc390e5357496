import re
from datetime import datetime
from app.extensions import db
from app.services.field_config import FIELD_TYPES, config_json, parse_config, parse_rules, input_kind

NAME_PATTERN = re.compile(r'^[a-z][a-zA-Z0-9]*$')

CATEGORY_META = {
    'personal': {'displayName': 'Personal Information', 'description': 'Basic personal details like name, date of birth, gender', 'tier': 'core'},
    'identity': {'displayName': 'Identity Documents', 'description': "ID numbers, passports, driver's licenses, visas", 'tier': 'core'},
    'contact': {'displayName': 'Contact Details', 'description': 'Phone numbers, email addresses, contact preferences', 'tier': 'core'},
    'address': {'displayName': 'Address Information', 'description': 'Residential, postal, and business addresses', 'tier': 'core'},
    'emergency': {'displayName': 'Emergency Contacts', 'description': 'Emergency contact persons and their details', 'tier': 'core'},
    'responsible': {'displayName': 'Responsible Party', 'description': 'Account holder or responsible person information', 'tier': 'core'},
    'preferences': {'displayName': 'Preferences', 'description': 'Dietary, accessibility, and communication preferences', 'tier': 'core'},
    'medical': {'displayName': 'Medical Information', 'description': 'Medical aid, health history, medications, allergies', 'tier': 'industry'},
    'insurance': {'displayName': 'Insurance', 'description': 'Insurance policies and coverage details', 'tier': 'industry'},
    'education': {'displayName': 'Education', 'description': 'Student information, school details, guardian info', 'tier': 'industry'},
    'employment': {'displayName': 'Employment', 'description': 'Employee details, banking, tax information', 'tier': 'industry'},
    'events': {'displayName': 'Events & Hospitality', 'description': 'Bookings, room preferences, event registration', 'tier': 'industry'},
    'membership': {'displayName': 'Membership', 'description': 'Gym, club, organization memberships', 'tier': 'industry'},
    'legal': {'displayName': 'Legal & Business', 'description': 'Client information, company details, billing', 'tier': 'industry'},
    'financial': {'displayName': 'Financial Compliance', 'description': 'KYC, FICA, source of funds, AML information', 'tier': 'industry'},
    'consent': {'displayName': 'Consent & Signatures', 'description': 'Terms acceptance, signatures, waivers', 'tier': 'industry'},
}

VALID_CATEGORIES = tuple(CATEGORY_META)
VALID_FIELD_TYPES = FIELD_TYPES


class FieldDefinition(db.Model):
    """A reusable field in the shared library. ``name`` is the data key and never changes."""
    __tablename__ = 'field_definitions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False, index=True)
    label = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    field_type = db.Column(db.String(30), nullable=False)
    category = db.Column(db.String(30), nullable=False, index=True)
    config = db.Column(db.JSON)
    validation = db.Column(db.JSON)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    special_personal_info = db.Column(db.Boolean, nullable=False, default=False)
    requires_explicit_consent = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    form_fields = db.relationship('FormField', back_populates='field_definition', lazy='dynamic')

    @property
    def parsed_config(self):
        return parse_config(self.field_type, self.config)

    @property
    def linked_field_names(self):
        """Role -> sibling name map for address fields; empty for every other type."""
        if self.field_type != 'address':
            return {}
        return dict(self.parsed_config.linked_fields)

    @property
    def usage_count(self):
        return self.form_fields.count()

    def to_dict(self, include_usage=False):
        data = {
            'id': self.id,
            'name': self.name,
            'label': self.label,
            'description': self.description,
            'fieldType': self.field_type,
            'inputKind': input_kind(self.field_type),
            'category': self.category,
            'config': config_json(self.field_type, self.config),
            'validation': parse_rules(self.validation),
            'sortOrder': self.sort_order,
            'isActive': self.is_active,
            'specialPersonalInfo': self.special_personal_info,
            'requiresExplicitConsent': self.requires_explicit_consent,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_usage:
            data['usageCount'] = self.usage_count
        return data
