from typing import Optional, Protocol

from flask import current_app, has_app_context

from loginguard import db
from loginguard.models import AccountProfile, SessionClaims, StudentProfile, TeacherProfile
from loginguard.services.event_log import with_app_context


class ProfileStore(Protocol):
    def get_by_account_id(self, account_id: str) -> Optional[AccountProfile]: ...

    def create(self, account_id: str, initial_data: dict) -> AccountProfile: ...

    def update(self, account_id: str, patch: dict) -> AccountProfile: ...

    def push_session_claims(self, account_id: str, claims: dict) -> None: ...

    def close(self) -> None: ...


class SqlProfileStore:
    def __init__(self, app=None):
        self.app = app or current_app._get_current_object()

    def _commit(self):
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    @with_app_context
    def get_by_account_id(self, account_id):
        return AccountProfile.query.filter_by(account_id=account_id).first()

    @with_app_context
    def create(self, account_id, initial_data):
        data = dict(initial_data)
        student_data = data.pop('student_profile', None)
        teacher_data = data.pop('teacher_profile', None)
        profile = AccountProfile(account_id=account_id, **data)
        if student_data is not None:
            profile.student_profile = StudentProfile(**student_data)
        if teacher_data is not None:
            profile.teacher_profile = TeacherProfile(**teacher_data)
        db.session.add(profile)
        self._commit()
        return profile

    @with_app_context
    def update(self, account_id, patch):
        profile = self.get_by_account_id(account_id)
        if profile is None:
            raise LookupError(f'No profile for account {account_id}')
        for key, value in patch.items():
            setattr(profile, key, value)
        self._commit()
        return profile

    @with_app_context
    def push_session_claims(self, account_id, claims):
        record = db.session.get(SessionClaims, account_id)
        if record is None:
            record = SessionClaims(account_id=account_id, claims=claims)
            db.session.add(record)
        else:
            record.claims = claims
        self._commit()

    def close(self):
        if has_app_context():
            db.session.remove()
