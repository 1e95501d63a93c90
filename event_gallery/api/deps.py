"""Dependencies for API endpoints."""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Path

from event_gallery.core.exceptions import AuthenticationRequired
from event_gallery.models.gallery import SessionContext
from event_gallery.services.gallery.service import (
    AUTH_REQUIRED_MESSAGE,
    EventGalleryService,
    GalleryManager,
)

# Collection ids accept [a-zA-Z0-9_.-]
EVENT_ID_PATTERN = r"^[a-zA-Z0-9_.\-]{1,255}$"


@lru_cache()
def get_gallery_manager() -> GalleryManager:
    """Process-wide gallery manager."""
    return GalleryManager()


def get_gallery_service(
    event_id: str = Path(..., pattern=EVENT_ID_PATTERN),
    manager: GalleryManager = Depends(get_gallery_manager),
) -> EventGalleryService:
    return manager.get(event_id)


def get_session_context(
    x_user_email: Optional[str] = Header(None),
    x_session_id: Optional[str] = Header(None),
) -> SessionContext:
    return SessionContext(user_email=x_user_email, session_id=x_session_id)


def require_session(
    session: SessionContext = Depends(get_session_context),
) -> SessionContext:
    """Participant flows need a logged-in user."""
    if not session.user_email:
        raise AuthenticationRequired(AUTH_REQUIRED_MESSAGE)
    return session
