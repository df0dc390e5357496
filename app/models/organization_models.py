from datetime import datetime, timedelta
from app.extensions import db

ORGANIZATION_STATUSES = ('pending', 'approved', 'rejected')
MEMBER_ROLES = ('owner', 'admin', 'member')

# Contact and address columns editable from provider settings; blanks are stored as NULL
ORGANIZATION_TEXT_FIELDS = (
    'phone', 'website', 'practice_number', 'industry_type', 'complex_name',
    'unit_number', 'street_address', 'suburb', 'city', 'province',
    'postal_code', 'country',
)


class Organization(db.Model):
    """A provider practice. Owns form templates and members."""
    __tablename__ = 'organizations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    practice_number = db.Column(db.String(100))
    phone = db.Column(db.String(50))
    website = db.Column(db.String(255))
    industry_type = db.Column(db.String(100))
    complex_name = db.Column(db.String(255))
    unit_number = db.Column(db.String(50))
    street_address = db.Column(db.String(255))
    suburb = db.Column(db.String(255))
    city = db.Column(db.String(255))
    province = db.Column(db.String(255))
    postal_code = db.Column(db.String(20))
    country = db.Column(db.String(100), default='South Africa')
    lat = db.Column(db.Float)
    lng = db.Column(db.Float)
    rejection_reason = db.Column(db.Text)
    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = db.relationship('Member', back_populates='organization', cascade="all, delete-orphan")
    form_templates = db.relationship('FormTemplate', back_populates='organization', lazy='dynamic', cascade="all, delete-orphan")

    @property
    def is_approved(self):
        return self.status == 'approved'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'status': self.status,
            'practiceNumber': self.practice_number,
            'phone': self.phone,
            'website': self.website,
            'industryType': self.industry_type,
            'complexName': self.complex_name,
            'unitNumber': self.unit_number,
            'streetAddress': self.street_address,
            'suburb': self.suburb,
            'city': self.city,
            'province': self.province,
            'postalCode': self.postal_code,
            'country': self.country,
            'lat': self.lat,
            'lng': self.lng,
            'rejectionReason': self.rejection_reason,
            'approvedAt': self.approved_at.isoformat() if self.approved_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class Member(db.Model):
    """Links a user to an organization with an organization-level role."""
    __tablename__ = 'members'
    __table_args__ = (db.UniqueConstraint('user_id', 'organization_id', name='uq_member_user_org'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default='member')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', back_populates='memberships')
    organization = db.relationship('Organization', back_populates='members')

    @property
    def is_owner(self):
        return self.role == 'owner'


def registration_expiry():
    return datetime.utcnow() + timedelta(hours=24)


class PendingProviderRegistration(db.Model):
    """Practice details captured at signup, held until the account is verified."""
    __tablename__ = 'pending_provider_registrations'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    practice_name = db.Column(db.String(255), nullable=False)
    practice_number = db.Column(db.String(100))
    phone = db.Column(db.String(50), nullable=False)
    industry_type = db.Column(db.String(100), nullable=False)
    website = db.Column(db.String(255))
    complex_name = db.Column(db.String(255))
    unit_number = db.Column(db.String(50))
    street_address = db.Column(db.String(255), nullable=False)
    suburb = db.Column(db.String(255))
    city = db.Column(db.String(255), nullable=False)
    province = db.Column(db.String(255))
    postal_code = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, default=registration_expiry, nullable=False)

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at < datetime.utcnow()
