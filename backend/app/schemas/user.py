from pydantic import BaseModel, ConfigDict
from datetime import datetime
from uuid import UUID


class MeResponse(BaseModel):
    id: UUID
    external_id: str
    email: str
    username: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
