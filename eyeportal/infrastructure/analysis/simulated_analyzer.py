import asyncio
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ...application.ports.device_api import ScanCapture
from ...application.ports.eye_analyzer import EyeAnalyzer
from ...config import settings
from ...exceptions import AnalysisError
from ...schemas.scan import AnalysisResult, DiseaseLevel

logger = logging.getLogger(__name__)

DEFAULT_RESULT = AnalysisResult(
    disease_detected="Mild Diabetic Retinopathy",
    disease_level=DiseaseLevel.MILD,
    confidence_score=87.5,
)


class SimulatedEyeAnalyzer(EyeAnalyzer):
    """Stand-in for a retinal inference service: checks the image, waits, returns a fixed finding."""

    def __init__(self, delay: Optional[float] = None, result: AnalysisResult = DEFAULT_RESULT) -> None:
        self.delay = settings.ANALYSIS_SIMULATED_DELAY_SEC if delay is None else delay
        self.result = result

    async def analyze(self, capture: ScanCapture) -> AnalysisResult:
        try:
            with Image.open(io.BytesIO(capture.image_data)) as img:
                width, height = img.size
        except (UnidentifiedImageError, OSError) as e:
            raise AnalysisError("Image could not be read for analysis") from e
        logger.info(f"Analyzing {width}x{height} {capture.source.value} image")
        await asyncio.sleep(self.delay)
        return self.result.model_copy()
