import hashlib
from datetime import datetime, timedelta
from app.extensions import db, bcrypt
from app.utils.encryption_util import encryptor

# --- Association tables ---
role_permissions = db.Table('role_permissions',
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id'), primary_key=True),
    db.Column('permission_id', db.Integer, db.ForeignKey('permissions.id'), primary_key=True)
)

class User(db.Model):
    """Account with encrypted email and a hashed lookup column."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(512))
    email = db.Column(db.String(512), nullable=False)
    email_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = db.Column(db.DateTime)
    failed_login_attempts = db.Column(db.Integer, default=0)
    account_locked = db.Column(db.Boolean, default=False)
    account_locked_until = db.Column(db.DateTime)
    password_changed_at = db.Column(db.DateTime, default=datetime.utcnow)
    is_active = db.Column(db.Boolean, default=True)

    # --- Relationships ---
    role = db.relationship('Role', backref='users')
    audit_logs = db.relationship('AuditLog', backref='user', lazy='dynamic')
    patient_profile = db.relationship('PatientProfile', back_populates='user', uselist=False, cascade="all, delete-orphan")
    memberships = db.relationship('Member', back_populates='user', cascade="all, delete-orphan")

    @staticmethod
    def create_hash(value: str) -> str:
        """Creates a SHA-256 hash for a given string."""
        if not value:
            return ""
        return hashlib.sha256(value.strip().lower().encode('utf-8')).hexdigest()

    @classmethod
    def find_by_email(cls, email):
        return cls.query.filter_by(email_hash=cls.create_hash(email)).first()

    @property
    def plain_email(self):
        return encryptor.decrypt(self.email) if self.email else None

    @property
    def plain_name(self):
        return encryptor.decrypt(self.name) if self.name else None

    def set_password(self, password: str) -> None:
        """Hashes and sets the user's password, enforcing complexity rules."""
        if not self._validate_password_strength(password):
            raise ValueError("Password does not meet complexity requirements")
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')
        self.password_changed_at = datetime.utcnow()

    def check_password(self, password: str) -> bool:
        """Checks a password and handles login attempt logic."""
        if self.account_locked and self.account_locked_until and datetime.utcnow() < self.account_locked_until:
            return False
        elif self.account_locked:
            self.account_locked = False
            self.account_locked_until = None
            self.failed_login_attempts = 0

        is_valid = bcrypt.check_password_hash(self.password_hash, password)

        if not is_valid:
            self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
            if self.failed_login_attempts >= 5:
                self.account_locked = True
                self.account_locked_until = datetime.utcnow() + timedelta(minutes=30)
        else:
            self.failed_login_attempts = 0
            self.last_login = datetime.utcnow()

        db.session.commit()
        return is_valid

    @property
    def primary_membership(self):
        """The organization membership used by provider endpoints (first one wins)."""
        return self.memberships[0] if self.memberships else None

    def to_dict(self):
        membership = self.primary_membership
        return {
            'id': self.id,
            'name': self.plain_name,
            'email': self.plain_email,
            'role': self.role.name if self.role else None,
            'isActive': self.is_active,
            'organizationId': membership.organization_id if membership else None,
            'lastLogin': self.last_login.isoformat() if self.last_login else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    @staticmethod
    def _validate_password_strength(password: str) -> bool:
        """Validates that a password meets the required complexity."""
        return (len(password) >= 12 and
                any(c.isupper() for c in password) and
                any(c.islower() for c in password) and
                any(c.isdigit() for c in password) and
                any(c in '!@#$%^&*()_+-=[]{}|;:,.<>?' for c in password))

class Role(db.Model):
    """Model for user roles."""
    __tablename__ = 'roles'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    permissions = db.relationship('Permission', secondary=role_permissions, backref='roles')

class Permission(db.Model):
    """Model for granular permissions."""
    __tablename__ = 'permissions'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    resource = db.Column(db.String(100), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(255))
