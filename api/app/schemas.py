from pydantic import BaseModel, Field


class ChannelUpdate(BaseModel):
    channel_id: str = Field(min_length=1)


class IntervalUpdate(BaseModel):
    days: int = Field(ge=1)


class AvoidPairRequest(BaseModel):
    user_id: str = Field(min_length=1)
    avoid_user_id: str = Field(min_length=1)
