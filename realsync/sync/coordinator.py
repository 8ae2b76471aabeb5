"""realsync — Cross-Orchestrator Sync Lock.

Both sync orchestrators write to overlapping collections (reals and their
links), so at most one sync of either kind may run at a time. The
coordinator owns that single slot; a caller that cannot take it skips its
run instead of waiting.
"""

from typing import Optional

from realsync.core.logging import get_logger

logger = get_logger("sync.coordinator")


class SyncCoordinator:
    """Process-wide single-slot lock shared by the orchestrators."""

    def __init__(self) -> None:
        self._holder: Optional[str] = None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def is_locked(self) -> bool:
        return self._holder is not None

    def try_acquire(self, owner: str) -> bool:
        """Take the lock for `owner`; False if anyone already holds it.

        There is no await between the check and the set, so this is atomic
        on the event loop.
        """
        if self._holder is not None:
            return False
        self._holder = owner
        return True

    def release(self, owner: str) -> None:
        if self._holder != owner:
            logger.warning(
                f"{owner} tried to release a sync lock held by {self._holder}"
            )
            return
        self._holder = None
