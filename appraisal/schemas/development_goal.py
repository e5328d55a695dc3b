from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime
from appraisal.models.development_goal import GoalCategory, GoalStatus


class DevelopmentGoalCreate(BaseModel):
    evaluation_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: GoalCategory = GoalCategory.other
    target_date: datetime
    progress: int = Field(0, ge=0, le=100)


class DevelopmentGoalUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[GoalCategory] = None
    target_date: Optional[datetime] = None
    progress: Optional[int] = Field(None, ge=0, le=100)

    @field_validator("title", "category", "target_date", "progress")
    @classmethod
    def not_null(cls, value):
        # Omitted fields stay unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("may not be null")
        return value


class DevelopmentGoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    evaluation_id: int
    employee_id: int
    title: str
    description: Optional[str] = None
    category: GoalCategory
    target_date: datetime
    progress: int
    status: GoalStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
