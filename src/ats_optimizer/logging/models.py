"""Run log data models."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class RunLog(BaseModel):
    """Single usage record for an optimization or scoring run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.now)
    mode: str  # "optimize" | "score"
    initial_score: float | None = None
    final_score: float | None = None
    iterations: int = 0
    termination_reason: str | None = None
    warning_count: int = 0
    elapsed_seconds: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    estimated_cost_usd: float = 0.0
    success: bool = True
    error_message: str | None = None
