"""
Shared fixtures: an in-memory app with seeded roles, users for each role,
an approved practice and a published form reachable through a QR code.
"""
import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from app.commands import seed_roles_and_permissions
from app.extensions import db
from app.models.user_models import User, Role
from app.models.organization_models import Organization, Member
from app.models.field_models import FieldDefinition
from app.models.form_models import FormTemplate, FormField, QRCode
from app.services.address_expander import expand_address_field
from app.utils.encryption_util import encryptor

PASSWORD = 'Str0ng!Passw0rd'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        seed_roles_and_permissions()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Factory creating a user with the given role."""
    def _make(email, role='patient', name=None, password=PASSWORD):
        user = User(
            email=encryptor.encrypt(email),
            email_hash=User.create_hash(email),
            name=encryptor.encrypt(name) if name else None,
            role_id=Role.query.filter_by(name=role).first().id,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


def headers_for(user):
    token = create_access_token(identity=str(user.id), additional_claims={'role': user.role.name})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@chkin.test', role='admin', name='Ada Admin')


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
def provider_user(make_user):
    return make_user('owner@practice.test', role='provider', name='Olivia Owner')


@pytest.fixture
def organization(provider_user):
    org = Organization(
        name='Sunrise Family Practice',
        slug='sunrise-family-practice',
        status='approved',
        phone='021 555 0100',
        industry_type='medical',
        street_address='12 Long Street',
        city='Cape Town',
        postal_code='8001',
    )
    db.session.add(org)
    db.session.flush()
    db.session.add(Member(user_id=provider_user.id, organization_id=org.id, role='owner'))
    db.session.commit()
    return org


@pytest.fixture
def provider_headers(provider_user, organization):
    return headers_for(provider_user)


@pytest.fixture
def patient_user(make_user):
    return make_user('thandi@example.test', role='patient', name='Thandi Patient')


@pytest.fixture
def patient_headers(patient_user):
    return headers_for(patient_user)


@pytest.fixture
def make_field(app):
    """Factory for library fields; address fields are expanded like the admin API does."""
    def _make(name, label=None, field_type='text', category='personal', sort_order=0, **extra):
        field = FieldDefinition(
            name=name,
            label=label or name,
            description=f'{label or name} description',
            field_type=field_type,
            category=category,
            sort_order=sort_order,
            **extra,
        )
        db.session.add(field)
        db.session.flush()
        if field_type == 'address':
            expand_address_field(field)
        db.session.commit()
        return field
    return _make


@pytest.fixture
def library(make_field):
    """A small library: names, email and an expanded residential address."""
    return {
        'firstName': make_field('firstName', 'First Name', sort_order=0),
        'lastName': make_field('lastName', 'Last Name', sort_order=1),
        'email': make_field('email', 'Email Address', field_type='email', category='contact'),
        'residentialAddress': make_field(
            'residentialAddress', 'Residential Address', field_type='address', category='address'
        ),
    }


@pytest.fixture
def form(organization, library, provider_user):
    """Active form with first name (required), last name and email, plus a consent clause."""
    template = FormTemplate(
        organization_id=organization.id,
        title='New Patient Intake',
        consent_clause='I consent to the processing of my personal information.',
        sections=['Personal', 'Contact'],
        created_by=provider_user.id,
    )
    db.session.add(template)
    db.session.flush()
    db.session.add_all([
        FormField(form_template_id=template.id, field_definition_id=library['firstName'].id,
                  is_required=True, sort_order=0, section='Personal'),
        FormField(form_template_id=template.id, field_definition_id=library['lastName'].id,
                  sort_order=1, section='Personal'),
        FormField(form_template_id=template.id, field_definition_id=library['email'].id,
                  sort_order=2, section='Contact'),
    ])
    db.session.commit()
    return template


@pytest.fixture
def qr_code(form, provider_user):
    qr = QRCode(form_template_id=form.id, short_code='Abc123_-', is_active=True, created_by=provider_user.id)
    db.session.add(qr)
    db.session.commit()
    return qr


@pytest.fixture
def auth_headers(app):
    """Bearer headers for an arbitrary user."""
    return headers_for
