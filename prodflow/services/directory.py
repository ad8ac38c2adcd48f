"""
Activity / user directory - read-only lookups used to resolve notification
recipients, plus the administrative user actions.

Department logins are shared: every operator at a stage signs in as that
department's user, so ``list_users_by_department`` usually returns one row.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from prodflow.core.departments import ADMIN_ROLE, DepartmentSequence
from prodflow.core.exceptions import NotFoundError, ValidationError
from prodflow.models import db
from prodflow.models.user import User
from prodflow.models.workflow import Activity
from prodflow.utils.helpers import clean_text

logger = logging.getLogger(__name__)


def get_activity(activity_id: int) -> Activity:
    activity = db.session.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError(resource="Activity", resource_id=activity_id)
    return activity


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def list_users() -> list[User]:
    return list(db.session.execute(select(User).order_by(User.username)).scalars())


def list_users_by_department(department: str) -> list[User]:
    """Active users whose role is *department*."""
    return list(db.session.execute(
        select(User)
        .where(User.role == department, User.is_active.is_(True))
        .order_by(User.id)
    ).scalars())


def list_admins() -> list[User]:
    return list_users_by_department(ADMIN_ROLE)


def create_user(data: dict, departments: DepartmentSequence) -> User:
    """Create a login.

    Args:
        data: {username, name, role} where role is ``admin`` or a department.

    Raises:
        ValidationError: Missing fields, unknown role or duplicate username.
    """
    errors = {}
    fields = {}
    for field, lower in (("username", True), ("name", False), ("role", True)):
        try:
            fields[field] = clean_text(data.get(field), field, lower=lower)
        except ValidationError as exc:
            errors[field] = exc.details.get(field, str(exc))
    username, name, role = fields.get("username"), fields.get("name"), fields.get("role")

    if "role" not in errors and role != ADMIN_ROLE and role not in departments:
        errors["role"] = f"must be '{ADMIN_ROLE}' or one of: {', '.join(departments)}"
    if errors:
        raise ValidationError("Invalid user data", details=errors)

    existing = db.session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if existing is not None:
        raise ValidationError(f"Username '{username}' is already taken",
                              details={"username": "duplicate"})

    user = User(username=username, name=name, role=role)
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s username=%s role=%s", user.id, username, role)
    return user


def deactivate_user(user_id: int) -> User:
    user = get_user(user_id)
    user.is_active = False
    db.session.commit()
    logger.info("User deactivated id=%s username=%s", user.id, user.username)
    return user


def seed_default_users(departments: DepartmentSequence) -> int:
    """Create the admin login and one shared login per department if missing.

    Returns:
        Number of users created.
    """
    wanted = [(ADMIN_ROLE, "Administrador", ADMIN_ROLE)]
    wanted += [(dept, dept.capitalize(), dept) for dept in departments]

    existing = set(db.session.execute(select(User.username)).scalars())
    created = 0
    for username, name, role in wanted:
        if username in existing:
            continue
        db.session.add(User(username=username, name=name, role=role))
        created += 1
    db.session.commit()
    return created
