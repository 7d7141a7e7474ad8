from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import List, Optional

from ..ports.record_store import RecordStore, APPOINTMENTS, EYE_SCANS, eq, gte, is_null
from ...config import settings
from ...schemas.appointment import DoctorStats
from ...schemas.scan import ScanRecord
from ...utils import as_utc, utc_now


@dataclass
class DashboardService:
    store: RecordStore

    async def recent_scans(self, patient_id: str, limit: Optional[int] = None) -> List[ScanRecord]:
        rows = await self.store.query(
            EYE_SCANS,
            [eq("patient_id", patient_id)],
            order_by="scan_date",
            descending=True,
            limit=limit or settings.RECENT_SCANS_LIMIT,
        )
        return [ScanRecord.model_validate(r) for r in rows]

    async def doctor_stats(self, doctor_id: str, today: Optional[datetime] = None) -> DoctorStats:
        today = as_utc(today) if today else utc_now()
        start_of_day = datetime.combine(today.date(), time.min, tzinfo=timezone.utc)
        total_patients = await self.store.count(APPOINTMENTS, [eq("doctor_id", doctor_id)])
        today_appointments = await self.store.count(
            APPOINTMENTS, [eq("doctor_id", doctor_id), gte("appointment_date", start_of_day)]
        )
        pending_reviews = await self.store.count(EYE_SCANS, [is_null("disease_detected")])
        return DoctorStats(
            total_patients=total_patients,
            today_appointments=today_appointments,
            pending_reviews=pending_reviews,
        )
