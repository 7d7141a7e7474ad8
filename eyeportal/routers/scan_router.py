from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
import logging

from ..application.services import ScanWorkflow
from ..dependencies import Container, get_container, require_role
from ..exceptions import create_success_response
from ..schemas.profile import UserType

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/patient/scan",
    tags=["Eye Scan"],
    dependencies=[Depends(require_role(UserType.PATIENT))],
)


async def get_scan_visit(container: Container = Depends(get_container)) -> ScanWorkflow:
    return container.open_scan_visit()


def _view(container: Container, workflow: ScanWorkflow) -> dict:
    data = workflow.view().model_dump(mode="json")
    data["notifications"] = container.notifier.drain()
    return create_success_response(data)


@router.get("")
async def scan_page(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    return _view(container, workflow)


@router.post("/upload")
async def upload_image(
    file: UploadFile = File(...),
    container: Container = Depends(get_container),
    workflow: ScanWorkflow = Depends(get_scan_visit),
):
    data = await file.read()
    workflow.select_file(data, file.filename, file.content_type)
    return _view(container, workflow)


@router.post("/camera/start")
async def start_camera(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    await workflow.start_camera()
    return _view(container, workflow)


@router.post("/camera/capture")
async def capture_image(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    await workflow.capture_from_camera()
    return _view(container, workflow)


@router.post("/camera/stop")
async def stop_camera(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    workflow.stop_camera()
    return _view(container, workflow)


@router.get("/camera/preview")
async def camera_preview(container: Container = Depends(get_container)):
    frame = await container.preview.snapshot_jpeg()
    if frame is None:
        raise HTTPException(status_code=404, detail="Camera is not streaming")
    return Response(content=frame, media_type="image/jpeg")


@router.post("/discard")
async def discard_image(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    workflow.discard()
    return _view(container, workflow)


@router.post("/analyze")
async def analyze_image(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    await workflow.analyze()
    response = _view(container, workflow)
    if workflow.record is not None:
        response["data"]["record_id"] = workflow.record.id
    return response


@router.post("/reset")
async def new_scan(container: Container = Depends(get_container), workflow: ScanWorkflow = Depends(get_scan_visit)):
    workflow.reset()
    return _view(container, workflow)


@router.post("/leave")
async def leave_scan(container: Container = Depends(get_container)):
    container.close_scan_visit()
    return create_success_response({"state": "closed", "notifications": container.notifier.drain()})
