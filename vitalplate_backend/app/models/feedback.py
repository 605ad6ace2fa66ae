# vitalplate_backend/app/models/feedback.py
from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class FeedbackIn(BaseModel):
    # like = +1, skip = -1; anything else is a 422 at the edge
    item_id: str = Field(min_length=1)
    delta: Literal[1, -1]

    # optional: lets a client rate an item this process never served
    tags: Optional[List[str]] = None

    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        if v is None:
            return None
        return [str(t).strip().lower() for t in v if str(t).strip()]


class ImpressionIn(BaseModel):
    item_ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)


__all__ = ["FeedbackIn", "ImpressionIn"]
