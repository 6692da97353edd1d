from __future__ import annotations

import logging
from typing import Dict

from sqlalchemy.orm import Session

from ..constants import DEFAULT_PERMISSIONS, DEFAULT_ROLE_PERMISSIONS, DEFAULT_ROLES
from ..models.models import Permission, Role

logger = logging.getLogger(__name__)


def ensure_default_roles(session: Session) -> Dict[str, Role]:
    existing = {role.name: role for role in session.query(Role).all()}
    updated = False
    for name, name_ar, description, description_ar in DEFAULT_ROLES:
        role = existing.get(name)
        if not role:
            role = Role(name=name, name_ar=name_ar, description=description, description_ar=description_ar)
            session.add(role)
            existing[name] = role
            updated = True
            logger.info("Seeded role %s", name)
        else:
            for field, value in (("name_ar", name_ar), ("description", description), ("description_ar", description_ar)):
                if getattr(role, field) is None:
                    setattr(role, field, value)
                    updated = True
    if updated:
        session.commit()
    return existing


def ensure_permissions(session: Session) -> Dict[str, Permission]:
    existing = {permission.name: permission for permission in session.query(Permission).all()}
    updated = False
    for name, name_ar in DEFAULT_PERMISSIONS:
        if name in existing:
            continue
        resource, action = name.split(":", 1)
        permission = Permission(name=name, name_ar=name_ar, resource=resource, action=action)
        session.add(permission)
        existing[name] = permission
        updated = True
    if updated:
        session.commit()
    return existing


def ensure_role_grants(session: Session) -> None:
    """Grant default permissions to seeded roles that have none yet.

    Roles whose grants were edited by an administrator are left alone.
    """
    roles = {role.name: role for role in session.query(Role).all()}
    permissions = {permission.name: permission for permission in session.query(Permission).all()}
    updated = False
    for role_name, grants in DEFAULT_ROLE_PERMISSIONS.items():
        role = roles.get(role_name)
        if not role or role.permissions:
            continue
        names = sorted(permissions) if "*" in grants else grants
        role.permissions = [permissions[name] for name in names if name in permissions]
        updated = True
        logger.info("Granted %d default permissions to role %s", len(role.permissions), role_name)
    if updated:
        session.commit()


def seed_defaults(session: Session) -> None:
    ensure_default_roles(session)
    ensure_permissions(session)
    ensure_role_grants(session)
