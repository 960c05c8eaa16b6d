from __future__ import annotations

"""Pydantic request schemas for the HTTP API.

Operation payloads are validated by the domain apply modules; these schemas
only pin down the envelope shape.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class OpSubmitRequest(BaseModel):
    op_type: str = Field(..., min_length=1, description="Operation type, e.g. VOTE_CAST")
    caller: str = Field(..., min_length=1, description="Account asserted by the upstream gateway")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Operation arguments")

    model_config = {"extra": "forbid"}
