"""Persistence helpers for the client-id to server-id mapping."""

from __future__ import annotations

from typing import List, Optional

from sqlmodel import select

from datetime_utils import utc_now
from models.identity_map import IdMapping
from storage.db import get_session


class IdentityMap:
    """Wrapper around SQLModel session for id mappings.

    ``set`` overwrites an existing association. The reconciler only writes a
    mapping once per client reference, so the store itself does not guard it.
    """

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def set(self, client_ref: str, server_ref: str) -> IdMapping:
        with self._session_factory() as session:
            mapping = session.get(IdMapping, client_ref)
            if mapping is None:
                mapping = IdMapping(client_ref=client_ref, server_ref=server_ref)
            else:
                mapping.server_ref = server_ref
                mapping.created_at = utc_now()
            session.add(mapping)
            session.commit()
            session.refresh(mapping)
            return mapping

    def get(self, client_ref: Optional[str]) -> Optional[str]:
        if not client_ref:
            return None
        with self._session_factory() as session:
            mapping = session.get(IdMapping, client_ref)
            return mapping.server_ref if mapping else None

    def get_client_ref(self, server_ref: Optional[str]) -> Optional[str]:
        if not server_ref:
            return None
        with self._session_factory() as session:
            stmt = select(IdMapping).where(IdMapping.server_ref == server_ref)
            mapping = session.exec(stmt).first()
            return mapping.client_ref if mapping else None

    def list_mappings(self) -> List[IdMapping]:
        with self._session_factory() as session:
            return list(session.exec(select(IdMapping)))


__all__ = ["IdentityMap"]
