from datetime import datetime, timezone

from loginguard import db
from werkzeug.security import generate_password_hash, check_password_hash


def utcnow():
    """返回不带时区的 UTC 时间，数据库中统一按此存储。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IdentityAccount(db.Model):
    """身份提供方账号：凭据校验与会话令牌签发的数据来源。"""
    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(120))
    email_verified = db.Column(db.Boolean, default=False)
    avatar_url = db.Column(db.String(512))
    disabled = db.Column(db.Boolean, default=False)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

class SessionClaims(db.Model):
    account_id = db.Column(db.String(64), primary_key=True)
    claims = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

class AccountProfile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), unique=True, nullable=False)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), default='')
    email = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(32), nullable=False, default='student')
    email_verified = db.Column(db.Boolean, default=False)
    profile_picture = db.Column(db.String(512))
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)

    student_profile = db.relationship('StudentProfile', uselist=False,
                                      back_populates='profile', cascade='all, delete-orphan')
    teacher_profile = db.relationship('TeacherProfile', uselist=False,
                                      back_populates='profile', cascade='all, delete-orphan')

class StudentProfile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey('account_profile.id'), nullable=False)
    grade_level = db.Column(db.String(64), default='Not specified')
    subjects = db.Column(db.JSON, default=list)
    learning_goals = db.Column(db.JSON, default=list)
    interests = db.Column(db.JSON, default=list)
    study_preferences = db.Column(db.JSON, default=list)
    completion_percentage = db.Column(db.Integer, default=20)

    profile = db.relationship('AccountProfile', back_populates='student_profile')

class TeacherProfile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey('account_profile.id'), nullable=False)
    application_status = db.Column(db.String(16), default='pending')
    subjects = db.Column(db.JSON, default=list)

    profile = db.relationship('AccountProfile', back_populates='teacher_profile')

class LoginAttempt(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), index=True)
    event_category = db.Column(db.String(32), nullable=False, default='login')
    action = db.Column(db.String(32), nullable=False)
    identifier = db.Column(db.String(120), index=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    ip_address = db.Column(db.String(45), index=True)
    user_agent = db.Column(db.Text)
    device_fingerprint = db.Column(db.String(64), index=True)
    was_successful = db.Column(db.Boolean, nullable=False, default=False)
    error_message = db.Column(db.Text)
    error_code = db.Column(db.String(64))
    details = db.Column('metadata', db.JSON, default=dict)

class SecurityEvent(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(32), nullable=False)
    risk_level = db.Column(db.String(16), nullable=False)
    account_id = db.Column(db.String(64), index=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    ip_address = db.Column(db.String(45), index=True)
    user_agent = db.Column(db.Text)
    device_fingerprint = db.Column(db.String(64))
    blocked = db.Column(db.Boolean, default=False)
    reason = db.Column(db.String(255))
    details = db.Column('metadata', db.JSON, default=dict)
