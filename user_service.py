"""
User accounts: registration, sign-in checks and admin role management
"""
import logging

import store
from errors import AuthenticationRequired, AuthorizationDenied, NotFound, ValidationFailed
from role_policy import Role, can_manage_users, parse_role

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def register(name, email, password):
    """
    Create a new account with the PENDING role

    An admin has to promote the account before it can use the request
    pages.
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()
    password = password or ""

    errors = {}
    if not name:
        errors.setdefault("name", []).append("Name is required")
    if not email or "@" not in email:
        errors.setdefault("email", []).append("A valid email is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.setdefault("password", []).append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if errors:
        raise ValidationFailed(errors)

    if store.find_user_by_email(email):
        raise ValidationFailed.single("email", "User already exists")

    user = store.create_user(name, email, password, role=Role.PENDING)
    logger.info("Registered user %s (%s)", user.id, email)
    return user


def authenticate(email, password):
    """Return the user for valid credentials, else raise AuthenticationRequired"""
    if not email or not password:
        raise AuthenticationRequired("Please enter both email and password")

    user = store.find_user_by_email(email)
    if user is None or not user.check_password(password):
        logger.warning("Failed sign-in for %s", (email or "").strip().lower())
        raise AuthenticationRequired("Invalid email or password")
    return user


def list_users(actor):
    if not can_manage_users(actor):
        raise AuthorizationDenied("Unauthorized: Admin access required")
    return store.list_users()


def change_role(actor, user_id, role):
    """Admin-only role change; an admin cannot demote themselves"""
    if not can_manage_users(actor):
        raise AuthorizationDenied("Unauthorized: Admin access required")

    if not user_id or not role:
        raise ValidationFailed.single("role", "User ID and role are required")

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise ValidationFailed.single("userId", "Invalid user ID")

    new_role = parse_role(role)
    if new_role is None:
        raise ValidationFailed.single("role", "Invalid role specified")

    if user_id == actor.id and new_role != Role.ADMIN:
        raise ValidationFailed.single("role", "Admins cannot remove their own admin role")

    if store.find_user(user_id) is None:
        raise NotFound("User", user_id)

    user = store.update_user_role(user_id, new_role)
    logger.info("User %s set role of user %s to %s", actor.id, user_id, new_role.value)
    return user
