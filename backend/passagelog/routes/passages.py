from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from passagelog.core.runtime import Runtime, get_runtime
from passagelog.schemas.passage import DeletedOut, PassageActionOut, PassageOut, PassageRangeIn
from passagelog.services.boatly_session import NotLoggedInError
from passagelog.services.passage import PassageStatus
from passagelog.services.pipeline import PassageBusyError, PipelineStoppedError, build_upload_job

router = APIRouter(prefix="/passages", tags=["passages"])


@router.get("/", response_model=list[PassageOut])
def list_passages(runtime: Runtime = Depends(get_runtime)):
    """
    List recorded passages, newest first.
    """
    store = runtime.store
    out = []
    for passage in store.list_passages():
        end = passage.end
        point_count = store.get_position_report_count_since(passage.start, until=end)
        out.append(PassageOut(start=passage.start, end=end, status=passage.status, point_count=point_count))
    return out


@router.post("/process", response_model=PassageActionOut, status_code=202)
def process_passage(payload: PassageRangeIn, runtime: Runtime = Depends(get_runtime)):
    try:
        credentials = runtime.boatly.require_credentials()
    except NotLoggedInError as e:
        raise HTTPException(status_code=401, detail=str(e))

    passage = runtime.store.get_passage(payload.start)
    if passage is None:
        raise HTTPException(status_code=404, detail="Passage not found")
    if passage.is_open:
        raise HTTPException(status_code=409, detail="Passage is still being recorded")
    if passage.status == PassageStatus.PROCESSED:
        raise HTTPException(status_code=409, detail="Passage has already been processed")
    if runtime.pipeline.is_active(passage.start):
        raise HTTPException(status_code=409, detail="Passage is already being processed")

    job = build_upload_job(passage.start, passage.end, credentials, runtime.settings.DATA_DIR)
    runtime.store.set_passage_status(passage.start, PassageStatus.PROCESSING)
    try:
        runtime.pipeline.submit(job)
    except PassageBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PipelineStoppedError as e:
        runtime.store.set_passage_status(passage.start, passage.status)
        raise HTTPException(status_code=503, detail=str(e))

    return {"status": PassageStatus.PROCESSING.value}


@router.post("/discard", response_model=PassageActionOut)
def discard_passage(payload: PassageRangeIn, runtime: Runtime = Depends(get_runtime)):
    if runtime.pipeline.is_active(payload.start):
        raise HTTPException(status_code=409, detail="Passage is being processed")
    if not runtime.store.delete_passage(payload.start, payload.end):
        raise HTTPException(status_code=404, detail="Passage not found")
    return {"status": "deleted"}


@router.post("/finish", response_model=PassageActionOut)
def finish_passage(runtime: Runtime = Depends(get_runtime)):
    """
    Close the passage being recorded so it can be processed or discarded.
    """
    if not runtime.recorder.end_passage(datetime.now(timezone.utc)):
        raise HTTPException(status_code=409, detail="No passage is being recorded")
    return {"status": PassageStatus.COMPLETED.value}


@router.post("/delete-completed", response_model=DeletedOut)
def delete_completed_passages(runtime: Runtime = Depends(get_runtime)):
    deleted = runtime.store.delete_passages_with_status(PassageStatus.PROCESSED)
    return {"deleted": deleted}
