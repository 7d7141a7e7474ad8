"""Capture-to-result workflow for one visit to the eye scan screen.

States move Empty -> ImageReady -> Analyzing -> Result, with discard
(ImageReady -> Empty) and reset (Result -> Empty). A scan record is written
only after the analyzer has resolved, and a failed analysis or insert puts
the workflow back on ImageReady with the same image so the patient can retry.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import ValidationError as SchemaError

from ..ports.device_api import CaptureSource, ScanCapture
from ..ports.eye_analyzer import EyeAnalyzer
from ..ports.notifier import Notifier
from ..ports.record_store import RecordStore, EYE_SCANS
from ..ports.storage_repo import StorageRepository
from ..ports.capability_source import Identity
from .capture_device import CaptureDeviceManager
from .session_synchronizer import SessionSynchronizer
from ...config import settings
from ...exceptions import AnalysisError, InvalidTransition, PersistenceError
from ...media_utils import load_upload
from ...schemas.scan import AnalysisResult, ScanRecord, ScanViewResponse

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    EMPTY = "empty"
    IMAGE_READY = "image_ready"
    ANALYZING = "analyzing"
    RESULT = "result"


class ScanWorkflow:
    def __init__(
        self,
        synchronizer: SessionSynchronizer,
        camera: CaptureDeviceManager,
        store: RecordStore,
        analyzer: EyeAnalyzer,
        notifier: Notifier,
        storage: StorageRepository,
        analysis_timeout: Optional[float] = None,
    ) -> None:
        self._synchronizer = synchronizer
        self.camera = camera
        self._store = store
        self._analyzer = analyzer
        self._notifier = notifier
        self._storage = storage
        self._analysis_timeout = settings.ANALYSIS_TIMEOUT_SEC if analysis_timeout is None else analysis_timeout
        self._state = ScanState.EMPTY
        self._capture: Optional[ScanCapture] = None
        self._result: Optional[AnalysisResult] = None
        self._record: Optional[ScanRecord] = None
        self._open = True

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def capture(self) -> Optional[ScanCapture]:
        return self._capture

    @property
    def result(self) -> Optional[AnalysisResult]:
        return self._result

    @property
    def record(self) -> Optional[ScanRecord]:
        return self._record

    @property
    def is_open(self) -> bool:
        return self._open

    def set_image(self, capture: ScanCapture) -> None:
        self._require(ScanState.EMPTY, "set an image")
        self._capture = capture
        self._state = ScanState.IMAGE_READY
        logger.debug(f"Image ready from {capture.source.value}")

    def select_file(self, data: bytes, filename: Optional[str], content_type: Optional[str]) -> ScanCapture:
        self._require(ScanState.EMPTY, "select a file")
        capture = load_upload(data, filename, content_type)
        if self.camera.is_active:
            # A file chosen mid-stream replaces the camera path.
            self.camera.release()
        self.set_image(capture)
        return capture

    async def start_camera(self) -> bool:
        self._require(ScanState.EMPTY, "start the camera")
        return await self.camera.acquire()

    async def capture_from_camera(self) -> ScanCapture:
        self._require(ScanState.EMPTY, "capture from the camera")
        capture = await self.camera.capture_frame()
        self.camera.release()
        if not self._open:
            return capture
        self.set_image(capture)
        return capture

    def stop_camera(self) -> None:
        self.camera.release()

    def discard(self) -> None:
        self._require(ScanState.IMAGE_READY, "discard the image")
        if self._capture is not None and self._capture.source is CaptureSource.CAMERA:
            self.camera.release()
        self._capture = None
        self._state = ScanState.EMPTY

    async def analyze(self) -> Optional[AnalysisResult]:
        """Run the analyzer, persist one scan record, and show the result.

        Returns the result, or None when the scan failed (the error has been
        surfaced through the notifier) or the visit was closed meanwhile.
        """
        self._require(ScanState.IMAGE_READY, "analyze")
        identity = self._synchronizer.state.identity
        if identity is None:
            self._notifier.error("You must be signed in to analyze a scan")
            return None

        capture = self._capture
        self._state = ScanState.ANALYZING
        try:
            result = await self._run_analysis(capture)
            if not self._open:
                logger.info("Scan visit closed during analysis, discarding result")
                return None
            record = await self._persist(identity, capture, result)
        except (AnalysisError, PersistenceError) as e:
            logger.error(f"Scan failed for {identity.id}: {e}")
            if self._open:
                self._state = ScanState.IMAGE_READY
                self._notifier.error(e.message or "Scan failed")
            return None
        except asyncio.CancelledError:
            if self._open:
                self._state = ScanState.IMAGE_READY
            raise

        if not self._open:
            logger.info(f"Scan {record.id} saved after the visit closed")
            return None
        self._record = record
        self._result = result
        self._state = ScanState.RESULT
        self._notifier.success("Scan completed successfully!")
        return result

    def reset(self) -> None:
        self._require(ScanState.RESULT, "start a new scan")
        self._capture = None
        self._result = None
        self._record = None
        self._state = ScanState.EMPTY

    def close(self) -> None:
        """Leave the capture screen: release the camera and drop the transient image."""
        if not self._open:
            return
        self._open = False
        self.camera.release()
        self._capture = None
        self._result = None
        self._state = ScanState.EMPTY
        logger.debug("Scan visit closed")

    async def __aenter__(self) -> "ScanWorkflow":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def view(self) -> ScanViewResponse:
        return ScanViewResponse(
            state=self._state.value,
            camera=self.camera.state.value,
            source=self._capture.source.value if self._capture else None,
            image=self._capture.data_url if self._capture else None,
            result=self._result,
        )

    async def _run_analysis(self, capture: ScanCapture) -> AnalysisResult:
        try:
            if self._analysis_timeout and self._analysis_timeout > 0:
                raw = await asyncio.wait_for(self._analyzer.analyze(capture), self._analysis_timeout)
            else:
                raw = await self._analyzer.analyze(capture)
        except asyncio.TimeoutError as e:
            raise AnalysisError("Analysis timed out, please try again") from e
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(str(e) or "Scan failed") from e

        if isinstance(raw, AnalysisResult):
            return raw
        try:
            return AnalysisResult.model_validate(raw)
        except SchemaError as e:
            raise AnalysisError("Analysis returned an invalid result") from e

    async def _persist(self, identity: Identity, capture: ScanCapture, result: AnalysisResult) -> ScanRecord:
        try:
            reference = await asyncio.to_thread(
                self._storage.save_bytes, f"scans/{identity.id}", capture.filename, capture.image_data
            )
            row = await self._store.insert(EYE_SCANS, {
                "patient_id": identity.id,
                "image_reference": reference,
                "disease_detected": result.disease_detected,
                "disease_level": result.disease_level.value if result.disease_level else None,
                "confidence_score": result.confidence_score,
                "scan_date": datetime.now(timezone.utc),
            })
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError("Could not save scan result") from e
        return ScanRecord.model_validate(row)

    def _require(self, expected: ScanState, operation: str) -> None:
        if not self._open:
            raise InvalidTransition(operation, "the scan screen is closed")
        if self._state is not expected:
            raise InvalidTransition(operation, self._state.value)
