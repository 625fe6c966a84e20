# backend/app/schemas/usage.py
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from app.core.constants import UsageDimension, UsageLevel


class UsageMetric(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    dimension: UsageDimension
    current: float
    limit: Union[int, str]
    percentage: float
    status: UsageLevel
    unit: str


class UsageDashboard(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    limits: Dict[str, Any]
    usage: Dict[str, Any]
    metrics: List[UsageMetric]


class LimitCheck(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allowed: bool
    dimension: UsageDimension
    current: Optional[float] = None
    limit: Optional[int] = None
    message: Optional[str] = None
