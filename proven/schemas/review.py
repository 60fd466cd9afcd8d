from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal

class ReviewDecision(BaseModel):
    decision: Literal["APPROVED", "REJECTED"]
    comment: str | None = Field(default=None, max_length=2000)
