import json
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from ..models.session import TradingSession

logger = logging.getLogger(__name__)

FILE_PREFIX = "trading_session_"
DAY_SECONDS = 24 * 60 * 60
FILE_MODE = 0o600


class SessionStore:
    """
    One JSON record per owner address under a directory.

    Records are keyed by the lowercased owner. A record that is unreadable,
    expired, or whose owner does not match its key is deleted on load.
    """

    def __init__(self, directory: str, max_age_days: int = 30):
        self.directory = Path(directory)
        self.max_age_seconds = max_age_days * DAY_SECONDS

    def _path(self, owner: str) -> Path:
        return self.directory / f"{FILE_PREFIX}{owner.lower()}.json"

    def load(self, owner: str) -> Optional[TradingSession]:
        path = self._path(owner)
        if not path.exists():
            return None

        try:
            session = TradingSession.from_dict(json.loads(path.read_text()))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable session for {owner}: {e}")
            self.clear(owner)
            return None

        if session.owner_address.lower() != owner.lower():
            logger.warning(f"Discarding session stored for {session.owner_address} under {owner}")
            self.clear(owner)
            return None

        if time.time() - session.created_at > self.max_age_seconds:
            logger.info(f"Session for {owner} expired")
            self.clear(owner)
            return None

        return session

    def save(self, session: TradingSession) -> None:
        """Atomically write the record, readable by the current user only."""
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        path = self._path(session.owner_address)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.unlink(missing_ok=True)
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        with os.fdopen(fd, "w") as f:
            f.write(json.dumps(session.to_dict()))
        os.replace(tmp_path, path)

    def clear(self, owner: str) -> None:
        self._path(owner).unlink(missing_ok=True)

    def owners(self) -> List[str]:
        """Lowercased owners with a stored record."""
        if not self.directory.exists():
            return []
        return sorted(
            path.stem[len(FILE_PREFIX):]
            for path in self.directory.glob(f"{FILE_PREFIX}*.json")
        )

    def clear_others(self, owner: str) -> List[str]:
        """Delete every record not belonging to owner. Returns the purged owners."""
        purged = [other for other in self.owners() if other != owner.lower()]
        for other in purged:
            self.clear(other)
        return purged
