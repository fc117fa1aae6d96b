"""
Identity context for EduSync requests.
"""

from edusync.common.auth.dependencies import (
    Principal,
    Role,
    get_current_principal,
    require_instructor,
)

__all__ = ["Principal", "Role", "get_current_principal", "require_instructor"]
