"""
Content-changed notification.

After a commit lands, the site rebuilds derived artifacts from the board
files. The store tells the outside world through a repository_dispatch
event sent on a background thread, plus any in-process subscribers.

This runs outside the commit transaction: a failed notification leaves the
commit in place and the derived artifacts stale until the next one.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional

from .github import GitHubClient

logger = logging.getLogger(__name__)

CONTENT_CHANGED = "content_changed"


class ContentNotifier:
    """Fire-and-forget dispatch of "content changed" after a commit."""

    def __init__(self, client: Optional[GitHubClient], event_type: str = "precompile-content",
                 background: bool = True):
        self.client = client
        self.event_type = event_type
        self.background = background
        self.subscribers: Dict[str, List[Callable]] = {}  # event -> callbacks

    def subscribe(self, event: str, callback: Callable) -> None:
        """Register a callback for an event name."""
        self.subscribers.setdefault(event, []).append(callback)

    def _emit(self, event: str, **kwargs) -> None:
        for callback in self.subscribers.get(event, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.warning(f"Error in {event} callback: {e}")

    def notify(self, board_id: str, version: str) -> Optional[threading.Thread]:
        """Announce a new version. Never raises.

        Returns the worker thread when the dispatch runs in the background.
        """
        self._emit(CONTENT_CHANGED, board_id=board_id, version=version)
        if not self.client or not self.event_type:
            return None

        if not self.background:
            self._dispatch(board_id, version)
            return None
        worker = threading.Thread(target=self._dispatch, args=(board_id, version), daemon=True)
        worker.start()
        return worker

    def _dispatch(self, board_id: str, version: str) -> None:
        try:
            self.client.dispatch(self.event_type, {"boardId": board_id, "sha": version})
            logger.info(f"Dispatched {self.event_type} for {board_id} at {version[:7]}")
        except Exception as e:
            logger.warning(f"Dispatch {self.event_type} failed for {board_id}: {e}")
