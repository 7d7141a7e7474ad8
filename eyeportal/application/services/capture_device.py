import asyncio
import logging
from enum import Enum
from typing import Optional

from ..ports.device_api import CaptureSource, DeviceAPI, PreviewSurface, ScanCapture, StreamConstraints, VideoStream
from ..ports.notifier import Notifier
from ...exceptions import DeviceError, InvalidTransition
from ...media_utils import rasterize_frame

logger = logging.getLogger(__name__)


class CameraState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    FAILED = "failed"


class CaptureDeviceManager:
    """Sole owner of the live camera stream for one capture screen."""

    def __init__(self, device_api: DeviceAPI, notifier: Notifier,
                 preview: Optional[PreviewSurface] = None,
                 constraints: Optional[StreamConstraints] = None) -> None:
        self._device_api = device_api
        self._notifier = notifier
        self._preview = preview
        self._constraints = constraints or StreamConstraints()
        self._state = CameraState.IDLE
        self._stream: Optional[VideoStream] = None
        # Bumped by every acquire and release; a request that resolves under an old ticket is stale.
        self._ticket = 0

    @property
    def state(self) -> CameraState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in (CameraState.REQUESTING, CameraState.STREAMING)

    async def acquire(self) -> bool:
        """Start the camera. Returns True once streaming; failures are reported, never raised."""
        if self._state is CameraState.STREAMING:
            return True
        if self._state is CameraState.REQUESTING:
            logger.debug("Camera request already in flight")
            return False

        self._ticket += 1
        ticket = self._ticket
        self._state = CameraState.REQUESTING
        try:
            stream = await self._device_api.request_stream(self._constraints)
        except asyncio.CancelledError:
            if ticket == self._ticket:
                self._state = CameraState.IDLE
            raise
        except Exception as e:
            if ticket != self._ticket:
                return False
            self._state = CameraState.FAILED
            logger.warning(f"Camera request failed: {e}")
            self._notifier.error("Could not access camera")
            self._state = CameraState.IDLE
            return False

        if ticket != self._ticket:
            # Released while the request was pending; nobody owns this stream.
            logger.info("Camera granted after release, stopping it")
            self._stop(stream)
            return False

        self._stream = stream
        self._state = CameraState.STREAMING
        if self._preview is not None:
            self._preview.attach(stream)
        logger.info(f"Camera streaming at {stream.width}x{stream.height}")
        return True

    async def capture_frame(self) -> ScanCapture:
        if self._state is not CameraState.STREAMING or self._stream is None:
            raise InvalidTransition("capture a frame", f"camera is {self._state.value}")
        stream = self._stream
        try:
            frame = await stream.read_frame()
        except Exception as e:
            raise DeviceError("Could not read a frame from the camera") from e
        if stream is not self._stream:
            raise DeviceError("Camera was released during capture")
        return ScanCapture(
            image_data=rasterize_frame(frame),
            content_type="image/png",
            source=CaptureSource.CAMERA,
            filename="capture.png",
        )

    def release(self) -> None:
        """Stop every track and return to idle. Safe to call from any state, any number of times."""
        self._ticket += 1
        stream, self._stream = self._stream, None
        try:
            if self._preview is not None and stream is not None:
                self._preview.detach()
            if stream is not None:
                self._stop(stream)
                logger.info("Camera released")
        finally:
            self._state = CameraState.IDLE

    def _stop(self, stream: VideoStream) -> None:
        try:
            stream.stop()
        except Exception as e:
            logger.error(f"Error stopping camera stream: {e}")
