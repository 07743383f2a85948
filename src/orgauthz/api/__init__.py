"""FastAPI adapter: request gates and error rendering."""

from .dependencies import get_caller_id, get_organization_id, require_operation, require_roles
from .errors import ACCESS_DENIED, register_rbac_exception_handlers

__all__ = [
    "ACCESS_DENIED",
    "get_caller_id",
    "get_organization_id",
    "register_rbac_exception_handlers",
    "require_operation",
    "require_roles",
]
