import click
from flask.cli import with_appcontext
from app.extensions import db
from app.models.user_models import User, Role, Permission
from app.models.field_models import FieldDefinition
from app.services.address_expander import expand_address_field
from app.utils.encryption_util import encryptor

ROLES = [
    {'name': 'admin', 'description': 'Platform administration: field library, providers, audit'},
    {'name': 'provider', 'description': 'Practice staff composing forms and QR codes'},
    {'name': 'patient', 'description': 'Check-in portal access'},
]

PERMISSIONS = [
    {'name': 'admin_fields', 'resource': 'fields', 'action': 'admin'},
    {'name': 'read_fields', 'resource': 'fields', 'action': 'read'},
    {'name': 'admin_providers', 'resource': 'providers', 'action': 'admin'},
    {'name': 'view_audit', 'resource': 'audit', 'action': 'read'},
    {'name': 'read_forms', 'resource': 'forms', 'action': 'read'},
    {'name': 'write_forms', 'resource': 'forms', 'action': 'write'},
    {'name': 'read_profile', 'resource': 'profile', 'action': 'read'},
    {'name': 'write_profile', 'resource': 'profile', 'action': 'write'},
]

# (name, label, description, field_type, category, config, extra flags)
SAMPLE_FIELDS = [
    ('firstName', 'First Name', 'Legal first name', 'text', 'personal', None, {}),
    ('lastName', 'Last Name', 'Legal surname', 'text', 'personal', None, {}),
    ('dateOfBirth', 'Date of Birth', 'Date of birth', 'date', 'personal', None, {}),
    ('gender', 'Gender', 'Gender identity', 'select', 'personal',
     {'options': [{'value': 'female', 'label': 'Female'}, {'value': 'male', 'label': 'Male'},
                  {'value': 'other', 'label': 'Other'}]}, {}),
    ('idNumber', 'ID Number', 'South African ID number', 'text', 'identity', None, {'special_personal_info': True}),
    ('email', 'Email Address', 'Primary email address', 'email', 'contact', None, {}),
    ('phoneNumber', 'Phone Number', 'Primary mobile number', 'phone', 'contact', None, {}),
    ('residentialAddress', 'Residential Address', 'Street address of residence', 'address', 'address', None, {}),
    ('medicalAidName', 'Medical Aid', 'Medical aid scheme', 'text', 'medical', None, {'special_personal_info': True}),
    ('allergies', 'Allergies', 'Known allergies', 'textarea', 'medical', None,
     {'special_personal_info': True, 'requires_explicit_consent': True}),
]


def seed_roles_and_permissions():
    """Creates the default roles and permissions and links them. Idempotent."""
    for role_data in ROLES:
        if not Role.query.filter_by(name=role_data['name']).first():
            db.session.add(Role(**role_data))
    for perm_data in PERMISSIONS:
        if not Permission.query.filter_by(name=perm_data['name']).first():
            db.session.add(Permission(**perm_data))
    db.session.flush()

    admin = Role.query.filter_by(name='admin').first()
    provider = Role.query.filter_by(name='provider').first()
    patient = Role.query.filter_by(name='patient').first()

    admin.permissions = Permission.query.all()
    provider.permissions = Permission.query.filter(
        db.or_(Permission.resource == 'forms', Permission.name == 'read_fields')
    ).all()
    patient.permissions = Permission.query.filter(Permission.resource == 'profile').all()
    db.session.commit()


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Initialize database with the default roles and permissions."""
    db.create_all()
    seed_roles_and_permissions()
    click.echo("Database initialized successfully with roles and permissions!")


@click.command('create-admin')
@click.argument('email')
@click.password_option()
@click.option('--name', default=None, help='Display name for the admin account.')
@with_appcontext
def create_admin_command(email, password, name):
    """Create a platform administrator account."""
    role = Role.query.filter_by(name='admin').first()
    if not role:
        raise click.ClickException("Run 'flask init-db' first; the admin role is missing.")
    if User.find_by_email(email):
        raise click.ClickException(f"A user with email {email} already exists.")

    user = User(
        email=encryptor.encrypt(email.strip()),
        email_hash=User.create_hash(email),
        name=encryptor.encrypt(name) if name else None,
        role_id=role.id,
    )
    try:
        user.set_password(password)
    except ValueError as e:
        raise click.ClickException(str(e))
    db.session.add(user)
    db.session.commit()
    click.echo(f"Admin {email} created (id={user.id}).")


@click.command('seed-fields')
@with_appcontext
def seed_fields_command():
    """Load a starter field library; address fields are expanded into their linked parts."""
    next_order = {}
    for name, label, description, field_type, category, config, flags in SAMPLE_FIELDS:
        if FieldDefinition.query.filter_by(name=name).first():
            click.echo(f"Field already exists: {name}")
            continue
        order = next_order.get(category, 0)
        field = FieldDefinition(
            name=name,
            label=label,
            description=description,
            field_type=field_type,
            category=category,
            config=config,
            sort_order=order,
            **flags,
        )
        db.session.add(field)
        db.session.flush()
        next_order[category] = order + 1
        if field_type == 'address':
            created, _ = expand_address_field(field)
            next_order[category] = order + len(created) + 1
            click.echo(f"Added field: {name} (+{len(created)} linked)")
        else:
            click.echo(f"Added field: {name}")

    db.session.commit()
    click.echo("Field library seeded successfully!")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(seed_fields_command)
