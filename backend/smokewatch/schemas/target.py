from pydantic import BaseModel
from typing import Optional


class TargetInfo(BaseModel):
    """Read-only view of a target as the engine sees it."""
    id: int
    name: str
    host: str
    group_name: Optional[str] = None
    enabled: bool = True

    model_config = {"from_attributes": True}
