"""
Progress side channel.

The engine never prints. Collaborators that want progress pass a
`reporter(event, payload)` callable; the engine keeps working if it is
absent or broken.
"""

from typing import Any, Callable, Dict, Optional

from .utils import logger

Reporter = Callable[[str, Dict[str, Any]], None]


class EventEmitter:
    """Wraps an optional reporter callable."""

    def __init__(self, reporter: Optional[Reporter] = None):
        self._reporter = reporter

    def __call__(self, event: str, **payload: Any):
        logger.debug(f"event {event}: {payload}")
        if self._reporter is None:
            return
        try:
            self._reporter(event, payload)
        except Exception:
            logger.exception(f"Reporter failed while handling '{event}'")
