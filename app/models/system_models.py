# /app/models/system_models.py
from datetime import datetime
from app.extensions import db

class AuditLog(db.Model):
    """POPIA audit trail; one row per recorded event."""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), index=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    resource_type = db.Column(db.String(100))
    resource_id = db.Column(db.String(100))
    # "metadata" is reserved on declarative models
    event_metadata = db.Column('metadata', db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    success = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    organization = db.relationship('Organization')

    def to_dict(self):
        user = self.user
        return {
            'id': self.id,
            'action': self.action,
            'resourceType': self.resource_type,
            'resourceId': self.resource_id,
            'metadata': self.event_metadata,
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
            'success': self.success,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'user': {
                'id': user.id,
                'name': user.plain_name,
                'email': user.plain_email,
            } if user else None,
            'organization': {
                'id': self.organization.id,
                'name': self.organization.name,
            } if self.organization else None,
        }

class RevokedToken(db.Model):
    """Track revoked JWT tokens"""
    __tablename__ = 'revoked_tokens'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(120), unique=True, nullable=False, index=True)
    revoked_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
