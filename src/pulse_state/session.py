from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from .models import DEFAULT_USER_ID


logger = structlog.get_logger(__name__)


@dataclass
class UserSession:
    """Who the service is acting for. Set once the user has logged in."""

    user_id: str = DEFAULT_USER_ID

    def set_user(self, user_id: Optional[str]) -> bool:
        """Switch to `user_id`. Empty input is ignored and the current id kept."""
        if not user_id:
            logger.warning("session_user_ignored", kept=self.user_id)
            return False
        self.user_id = user_id
        logger.info("session_user_set", user_id=user_id)
        return True
