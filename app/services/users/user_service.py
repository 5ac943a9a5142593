# ============================================================================
# User Identity Service
# ============================================================================
from typing import Optional
import logging

from app.core.exceptions import IdentityNotFound
from app.schemas.progress import Identity, UserProgress, utcnow
from app.services.gamification.progress import ProgressRepository

logger = logging.getLogger(__name__)


class UserService:
    """
    Registered and guest identities.

    Registration creates the progress record; guests never get one.
    Credential checks happen outside this service.
    """

    DEFAULT_GUEST_NAME = "Guest"

    def __init__(self, repository: ProgressRepository):
        self.repository = repository

    async def register(self, username: str) -> UserProgress:
        username = username.strip()
        progress = await self.repository.create(username)
        logger.info(f"Registered user {username}")
        return progress

    async def login(self, username: str) -> UserProgress:
        progress = await self.repository.get(username.strip())
        if progress is None:
            raise IdentityNotFound(username)

        progress.last_login_at = utcnow()
        await self.repository.save(progress)
        return progress

    def guest(self, display_name: Optional[str] = None) -> Identity:
        name = (display_name or "").strip() or self.DEFAULT_GUEST_NAME
        return Identity(username=name, is_guest=True)
