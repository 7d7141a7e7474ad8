from typing import Protocol

from .device_api import ScanCapture
from ...schemas.scan import AnalysisResult


class EyeAnalyzer(Protocol):
    async def analyze(self, capture: ScanCapture) -> AnalysisResult:
        ...
