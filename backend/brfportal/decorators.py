# Overview: Request authentication and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, role_resolver
from .services.permission_service import PermissionDeniedError, require_capability as _require_capability


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'role_context')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session and resolve the caller's roles.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.role_context: RoleContext (organization + roles), resolved per request
    - g.org_id: The caller's organization ID (None when unprovisioned)
    - g.session_context: The full SessionContext object

    Unprovisioned principals pass; they simply hold no capabilities.
    Returns 401 if the token is missing, invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        role_context = role_resolver.resolve(context.user.id)

        g.current_user = context.user
        g.role_context = role_context
        g.org_id = role_context.organization_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability: str):
    """
    Require the caller's roles to satisfy a capability.

    Only the role part is checked here; entity-state preconditions (an
    attestable status) are enforced by the services. Denials are logged
    to security_events and answered with 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                _require_capability(g.role_context, capability)
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": capability,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_portal_access = require_capability("ACCESS_PORTAL")
require_superadmin = require_capability("ADMIN_CROSS_ORGANIZATION")
