from fastapi import APIRouter, Depends

from passagelog.core.runtime import Runtime, get_runtime
from passagelog.schemas.position import PositionAcceptedOut, PositionDeltaIn, RecorderStatusOut

router = APIRouter(tags=["positions"])


@router.post("/positions", response_model=PositionAcceptedOut)
def ingest_position(payload: PositionDeltaIn, runtime: Runtime = Depends(get_runtime)):
    state = runtime.recorder.ingest(payload.to_position_report())
    return {"phase": state.phase, "status_message": state.status_message}


@router.get("/status", response_model=RecorderStatusOut)
def recorder_status(runtime: Runtime = Depends(get_runtime)):
    state = runtime.recorder.snapshot()
    start = state.current_passage_start
    return {
        "phase": state.phase,
        "status_message": state.status_message,
        "underway": state.underway,
        "passage_start": start,
        "passage_point_count": runtime.store.get_position_report_count_since(start) if start else 0,
        "position_report_count": runtime.store.get_position_report_count(),
    }
