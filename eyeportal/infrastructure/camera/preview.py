from typing import Optional

from ...application.ports.device_api import PreviewSurface, VideoStream
from ...media_utils import encode_jpeg


class FramePreview(PreviewSurface):
    """Preview surface polled by the kiosk page for the live camera image."""

    def __init__(self) -> None:
        self._stream: Optional[VideoStream] = None

    @property
    def attached(self) -> bool:
        return self._stream is not None

    def attach(self, stream: VideoStream) -> None:
        self._stream = stream

    def detach(self) -> None:
        self._stream = None

    async def snapshot_jpeg(self) -> Optional[bytes]:
        stream = self._stream
        if stream is None:
            return None
        frame = await stream.read_frame()
        return encode_jpeg(frame)
