from __future__ import annotations

import json
import logging
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Callable

from sqlalchemy.orm import Session

from storefront.checkout.models import CustomerProfile
from storefront.persistence import pg
from storefront.persistence.models import ProfileModel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class SqlProfileRepository:
    def __init__(self, session_factory: SessionFactory | None = None):
        self._session_factory = session_factory

    def _scope(self) -> AbstractContextManager[Session]:
        factory = self._session_factory or pg.session_scope
        return factory()

    async def get_profile(self, user_id: str) -> CustomerProfile | None:
        with self._scope() as session:
            row = session.get(ProfileModel, user_id)
            if row is None:
                return None
            return CustomerProfile(
                user_id=row.user_id,
                full_name=row.full_name,
                phone=row.phone,
                address=row.address,
                postal_code=row.postal_code,
            )

    async def save_profile(self, profile: CustomerProfile, role: str = "customer") -> None:
        if not profile.user_id:
            raise ValueError("profile needs a user id")
        with self._scope() as session:
            row = session.get(ProfileModel, profile.user_id)
            if row is None:
                row = ProfileModel(user_id=profile.user_id, role=role)
                session.add(row)
            row.full_name = profile.full_name
            row.phone = profile.phone
            row.address = profile.address
            row.postal_code = profile.postal_code


def cache_profile(path: Path, profile: CustomerProfile) -> None:
    """Keep a local copy so the postal code survives a failed profile fetch."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = path.with_suffix(".tmp")
    tmp_file.write_text(json.dumps(profile.model_dump(), ensure_ascii=False), encoding="utf-8")
    tmp_file.replace(path)
    logger.debug("profile for user=%s cached at %s", profile.user_id, path)
