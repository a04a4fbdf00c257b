"""
Session-scoped cancellation flags.

Set by the abort endpoint, polled by the batch orchestrator and the
Midjourney relay between units of work.
"""
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)


class AbortRegistry:
    """
    In-memory map of session id -> should-abort flag.

    Entries are never expired; whoever runs a session must call `clear`
    on every exit path.
    """

    def __init__(self):
        self._flags: Dict[str, bool] = {}

    def request_abort(self, session_id: str) -> None:
        """Mark a session for cancellation. Idempotent; unknown ids are recorded."""
        self._flags[session_id] = True
        logger.info(f"Abort requested for session {session_id}")

    def should_abort(self, session_id: str) -> bool:
        """Current flag value; unknown sessions are not aborted."""
        should = self._flags.get(session_id, False)
        if should:
            logger.debug(f"Session {session_id} is marked for abort")
        return should

    def clear(self, session_id: str) -> None:
        """Drop the entry for a session. Idempotent."""
        if self._flags.pop(session_id, None) is not None:
            logger.debug(f"Cleared abort flag for session {session_id}")

    def active_sessions(self) -> List[str]:
        """Sessions currently flagged for abort."""
        return [sid for sid, flag in self._flags.items() if flag]
