from pydantic import BaseModel, Field


class LoginIn(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


class LoginOut(BaseModel):
    status: str
    user_id: str | None = None


class LoggedInOut(BaseModel):
    loggedin: bool
