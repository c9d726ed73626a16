from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from passagelog.services.passage import PassageStatus
from passagelog.services.position import as_utc


class PassageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime | None
    status: PassageStatus
    point_count: int = 0


class PassageRangeIn(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalise_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def check_order(self):
        if self.end < self.start:
            raise ValueError("'end' must not be earlier than 'start'")
        return self


class PassageActionOut(BaseModel):
    status: str


class DeletedOut(BaseModel):
    deleted: int
