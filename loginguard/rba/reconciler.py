# loginguard/rba/reconciler.py

import logging
from dataclasses import dataclass, field
from typing import List

from loginguard.models import utcnow

LOG = logging.getLogger(__name__)

DEFAULT_ROLE = 'student'

ROLE_PERMISSIONS = {
    'student': [
        'view:student_dashboard',
        'join:study_groups',
        'book:tutoring',
        'enhance:profile',
    ],
    'teacher': [
        'view:teacher_dashboard',
        'manage:sessions',
        'upload:content',
        'view:student_progress',
    ],
    'pending_teacher': [
        'view:application_status',
        'update:application',
    ],
    'admin': [
        'view:admin_panel',
        'manage:users',
        'approve:teachers',
        'view:audit_logs',
        'manage:platform',
    ],
}
FALLBACK_PERMISSIONS = ['view:student_dashboard']


def permissions_for_role(role):
    return list(ROLE_PERMISSIONS.get(role, FALLBACK_PERMISSIONS))


def split_display_name(display_name):
    parts = (display_name or '').split()
    if not parts:
        return 'User', ''
    return parts[0], ' '.join(parts[1:])


def is_profile_complete(profile, threshold=80):
    if profile.role == 'student':
        student = profile.student_profile
        return bool(student and (student.completion_percentage or 0) >= threshold)
    if profile.role == 'teacher':
        teacher = profile.teacher_profile
        return bool(teacher and teacher.application_status == 'approved')
    if profile.role == 'admin':
        return True
    return False


@dataclass
class ReconciliationResult:
    profile: dict
    permissions: List[str]
    profile_complete: bool
    is_new_profile: bool
    claims: dict = field(default_factory=dict)


class AccountReconciler:
    """凭据校验成功后，同步本地资料记录并把授权信息写入会话声明。

    出错时直接抛出，由调用方决定降级处理。
    """

    def __init__(self, store, completion_threshold=80, clock=utcnow):
        self.store = store
        self.completion_threshold = completion_threshold
        self.clock = clock

    def reconcile(self, account_id, email, display_name, email_verified, avatar_url=None):
        now = self.clock()
        profile = self.store.get_by_account_id(account_id)
        is_new = profile is None

        if is_new:
            first_name, last_name = split_display_name(display_name)
            profile = self.store.create(account_id, {
                'first_name': first_name,
                'last_name': last_name,
                'email': email,
                'role': DEFAULT_ROLE,
                'email_verified': bool(email_verified),
                'profile_picture': avatar_url or None,
                'last_login_at': now,
                'student_profile': {
                    'grade_level': 'Not specified',
                    'subjects': [],
                    'learning_goals': [],
                    'interests': [],
                    'study_preferences': [],
                    'completion_percentage': 20,
                },
            })
            LOG.info("为账号 %s 创建了本地资料", account_id)
        else:
            patch = {'email_verified': bool(email_verified), 'last_login_at': now}
            if avatar_url and not profile.profile_picture:
                patch['profile_picture'] = avatar_url
            profile = self.store.update(account_id, patch)

        complete = is_profile_complete(profile, self.completion_threshold)
        permissions = permissions_for_role(profile.role)
        claims = {
            'role': profile.role,
            'permissions': permissions,
            'profileComplete': complete,
            'emailVerified': bool(profile.email_verified),
            'lastLoginAt': now.isoformat(),
            'profileId': profile.id,
        }
        self.store.push_session_claims(account_id, claims)

        return ReconciliationResult(
            profile={
                'id': profile.id,
                'firstName': profile.first_name,
                'lastName': profile.last_name or '',
                'role': profile.role,
                'profilePicture': profile.profile_picture,
                'profileComplete': complete,
                'lastLoginAt': profile.last_login_at.isoformat() if profile.last_login_at else None,
            },
            permissions=permissions,
            profile_complete=complete,
            is_new_profile=is_new,
            claims=claims,
        )
