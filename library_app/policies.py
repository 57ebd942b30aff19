"""
Access tiers, checked in one place.

Routes declare the capability they need with ``Depends(require(...))``
instead of scattering role checks through handlers.
"""

from enum import Enum
from typing import Optional

from fastapi import Depends

import library_app.models as models
from library_app.auth import ROLE_ADMIN, get_current_user
from library_app.exceptions import ForbiddenError, UnauthorizedError


class Capability(str, Enum):
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


def check_capability(user: Optional[models.User], capability: Capability) -> models.User:
    if user is None:
        raise UnauthorizedError("User is not authenticated.")
    if capability is Capability.ADMIN and user.role != ROLE_ADMIN:
        raise ForbiddenError("Administrator role required.")
    return user


def require(capability: Capability):
    """FastAPI dependency returning the current user once ``capability`` holds."""

    def dependency(user: Optional[models.User] = Depends(get_current_user)) -> models.User:
        return check_capability(user, capability)

    return dependency


authenticated_user = require(Capability.AUTHENTICATED)
admin_user = require(Capability.ADMIN)
