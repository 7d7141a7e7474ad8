import asyncio
import logging
import threading

import cv2
import numpy as np

from ...application.ports.device_api import DeviceAPI, StreamConstraints, VideoStream
from ...exceptions import DeviceError

logger = logging.getLogger(__name__)


class OpenCVStream(VideoStream):
    def __init__(self, capture: "cv2.VideoCapture") -> None:
        self._capture = capture
        self._lock = threading.Lock()
        self._stopped = False
        self._width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    async def read_frame(self) -> np.ndarray:
        return await asyncio.to_thread(self._read)

    def _read(self) -> np.ndarray:
        with self._lock:
            if self._stopped:
                raise DeviceError("Camera stream is stopped")
            ret, frame = self._capture.read()
        if not ret or frame is None:
            raise DeviceError("Camera returned no frame")
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._capture.release()


class OpenCVDeviceAPI(DeviceAPI):
    async def request_stream(self, constraints: StreamConstraints) -> OpenCVStream:
        return await asyncio.to_thread(self._open, constraints)

    def _open(self, constraints: StreamConstraints) -> OpenCVStream:
        cap = cv2.VideoCapture(constraints.device_index)
        if not cap.isOpened():
            cap.release()
            raise DeviceError(f"Camera {constraints.device_index} is not available")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        # Some drivers report success on open and only fail on the first read (e.g. permission denied).
        ret, _ = cap.read()
        if not ret:
            cap.release()
            raise DeviceError(f"Camera {constraints.device_index} returned no frame")
        logger.info(f"Opened camera {constraints.device_index}")
        return OpenCVStream(cap)
