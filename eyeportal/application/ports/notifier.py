from typing import Protocol


class Notifier(Protocol):
    def success(self, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...
