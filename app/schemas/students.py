from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from app.utils.datetime_utils import UTCDateTime


StrippedStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]


class StudentBase(BaseModel):
    student_name: StrippedStr
    class_name: Optional[str] = Field(None, alias="class")
    section: Optional[str] = None
    roll_number: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class StudentCreate(StudentBase):
    student_identifier: StrippedStr = Field(..., description="Unique within the organisation")


class StudentUpdate(BaseModel):
    student_identifier: Optional[StrippedStr] = None
    student_name: Optional[StrippedStr] = None
    class_name: Optional[str] = Field(None, alias="class")
    section: Optional[str] = None
    roll_number: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class StudentOut(BaseModel):
    id: UUID
    organisation: str
    student_identifier: str
    student_name: str
    class_name: Optional[str] = Field(None, serialization_alias="class")
    section: Optional[str] = None
    roll_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)
