from flask import g

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"

def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return role_name in user.role_names

def current_role() -> str:
    """Role string handed to the booking core: 'admin' or 'user'."""
    return "admin" if has_role(ROLE_ADMIN) else "user"
