from datetime import datetime
from app.extensions import db
from app.utils.encryption_util import encryptor

class PatientProfile(db.Model):
    """A patient's reusable answers, keyed by field definition name (encrypted)."""
    __tablename__ = 'patient_profiles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    data_encrypted = db.Column(db.Text, nullable=False, default='')

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', back_populates='patient_profile')

    @property
    def data(self):
        return encryptor.decrypt_json(self.data_encrypted)

    @data.setter
    def data(self, value):
        self.data_encrypted = encryptor.encrypt_json(value)

    @classmethod
    def for_user(cls, user_id, create=False):
        profile = cls.query.filter_by(user_id=user_id).first()
        if profile is None and create:
            profile = cls(user_id=user_id)
            profile.data = {}
            db.session.add(profile)
        return profile

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'data': self.data,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
