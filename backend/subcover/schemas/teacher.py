from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from subcover.models.teacher import TeacherRole


class TeacherCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    department: str = Field(min_length=1, max_length=200)
    role: TeacherRole = TeacherRole.teacher

    @field_validator("name", "department")
    @classmethod
    def strip_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Value cannot be empty")
        return trimmed

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class TeacherOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    department: str
    role: TeacherRole
    is_active: bool
    substitute_count: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
