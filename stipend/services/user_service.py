"""
stipend.services.user_service — User Lookup & Creation
=======================================================

Users are created lazily the first time an authenticated external id
shows up.  Profile data beyond the display name is owned by the identity
provider and never stored here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stipend.database.models import User
from stipend.services.stores import snapshot_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from stipend.engine.stores import UserSnapshot

logger = logging.getLogger(__name__)


def get_user_by_external_id(session: Session, external_id: str) -> User | None:
    return session.scalar(select(User).where(User.external_id == external_id))


def get_or_create_user(
    session: Session, external_id: str, display_name: str | None = None
) -> User:
    """Fetch or insert a User row (no commit)."""
    user = get_user_by_external_id(session, external_id)
    if user is None:
        user = User(external_id=external_id, display_name=display_name, balance=0)
        session.add(user)
        session.flush()
        logger.info("Created user %d for external id %s", user.id, external_id)
    elif display_name and user.display_name != display_name:
        user.display_name = display_name
    return user


def ensure_user(
    engine: Engine, external_id: str, display_name: str | None = None
) -> UserSnapshot:
    """Get-or-create in its own transaction and return a snapshot.

    Two first requests for the same external id may race on the unique
    ``external_id`` index; the loser re-reads the winner's row.
    """
    with Session(engine) as session:
        try:
            user = get_or_create_user(session, external_id, display_name)
            session.commit()
        except IntegrityError:
            session.rollback()
            user = get_user_by_external_id(session, external_id)
            if user is None:
                raise
        return snapshot_user(user)
