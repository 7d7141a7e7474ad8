import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class CaptureSource(str, Enum):
    UPLOAD = "upload"
    CAMERA = "camera"


@dataclass(frozen=True)
class ScanCapture:
    """A still eye image held in memory while the capture screen is open."""

    image_data: bytes
    content_type: str
    source: CaptureSource
    filename: str = "scan.png"

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.image_data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


@dataclass(frozen=True)
class StreamConstraints:
    device_index: int = 0
    width: int = 1280
    height: int = 720


class VideoStream(Protocol):
    @property
    def width(self) -> int:
        ...

    @property
    def height(self) -> int:
        ...

    async def read_frame(self) -> Any:
        """Return the current frame as an RGB array of shape (height, width, 3)."""
        ...

    def stop(self) -> None:
        ...


class DeviceAPI(Protocol):
    async def request_stream(self, constraints: StreamConstraints) -> VideoStream:
        ...


class PreviewSurface(Protocol):
    def attach(self, stream: VideoStream) -> None:
        ...

    def detach(self) -> None:
        ...
