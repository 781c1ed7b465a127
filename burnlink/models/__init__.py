# burnlink/models/__init__.py
# Central import surface for SQLModel table registration.
# Keeping these imports ensures init_db() sees all models and creates tables.

from .drop import Drop, DropKind, DropStatus
from .view import View

# Accounts
from .user import User, UserRole, PRIVILEGED_ROLES
from .user_session import UserSession
from .invite import Invite

__all__ = [
    "Drop",
    "DropKind",
    "DropStatus",
    "View",
    "User",
    "UserRole",
    "PRIVILEGED_ROLES",
    "UserSession",
    "Invite",
]
