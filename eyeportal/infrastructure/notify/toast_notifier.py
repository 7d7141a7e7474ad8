import logging
from collections import deque
from typing import Deque, Dict, List

from ...application.ports.notifier import Notifier

logger = logging.getLogger(__name__)


class ToastNotifier(Notifier):
    """Buffers user-facing messages until the page drains them."""

    def __init__(self, maxlen: int = 50) -> None:
        self._messages: Deque[Dict[str, str]] = deque(maxlen=maxlen)

    def success(self, message: str) -> None:
        self._push("success", message)

    def info(self, message: str) -> None:
        self._push("info", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def drain(self) -> List[Dict[str, str]]:
        messages = list(self._messages)
        self._messages.clear()
        return messages

    def _push(self, level: str, message: str) -> None:
        logger.debug(f"toast[{level}] {message}")
        self._messages.append({"level": level, "message": message})
