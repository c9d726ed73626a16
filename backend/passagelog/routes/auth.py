from fastapi import APIRouter, Depends, HTTPException

from passagelog.core.runtime import Runtime, get_runtime
from passagelog.integrations.boatly import BoatlyAPIError
from passagelog.schemas.auth import LoggedInOut, LoginIn, LoginOut

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginOut)
def boatly_login(payload: LoginIn, runtime: Runtime = Depends(get_runtime)):
    try:
        credentials = runtime.boatly.login(payload.email, payload.password)
    except BoatlyAPIError as e:
        raise HTTPException(status_code=401, detail=f"Login failed: {e}")
    return {"status": "OK", "user_id": credentials.user_id}


@router.get("/isloggedin", response_model=LoggedInOut)
def is_logged_in(runtime: Runtime = Depends(get_runtime)):
    return {"loggedin": runtime.boatly.is_logged_in}
