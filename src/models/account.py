from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from ulid import ULID


class UserAccount(BaseModel):
    id: str = Field(default_factory=lambda: f"u_{ULID.from_datetime(datetime.now())}")
    email: str
    nickname: str = ""
    height: float = Field(ge=0.5, le=2.5)
    weight: float = Field(ge=20, le=300)
    createdAt: datetime = Field(default_factory=lambda: datetime.now())
    passwordHash: Optional[str] = None

    def session_blob(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"passwordHash"})

    def remote_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id"})
