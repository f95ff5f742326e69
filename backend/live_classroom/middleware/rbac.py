"""Role-based capability checks for live classroom actions."""

from live_classroom.exceptions import NotAuthorized
from live_classroom.models.user import UserRole
from live_classroom.services.auth_service import Identity


def require_role(*roles: UserRole, notify_sender: bool = True):
    """
    Capability factory for role-gated actions.
    Usage: require_teacher(identity) raises NotAuthorized for students.
    """
    def role_checker(identity: Identity) -> Identity:
        if identity.role not in roles:
            raise NotAuthorized(
                f"Access denied. Required role(s): {', '.join(r.value for r in roles)}",
                notify_sender=notify_sender,
            )
        return identity
    return role_checker


# Question triggering by a non-teacher is ignored rather than reported.
require_teacher = require_role(UserRole.TEACHER, notify_sender=False)
require_student = require_role(UserRole.STUDENT)
