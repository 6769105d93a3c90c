# gosafe/models/user.py
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "admin"]
ELEVATED_ROLES = frozenset({"admin"})


class Principal(BaseModel):
    # what the identity provider hands back for a valid access token
    user_id: str
    role: Role = "user"

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES


class UserRecord(BaseModel):
    # only the fields the report/vote flow cares about
    user_id: str
    role: Role = "user"
    reputation: Decimal = Field(Decimal("0"), description="Participation score, adjusted by rewards")
    banned: bool = False
    banned_reason: Optional[str] = None
