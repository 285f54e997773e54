from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    ADMIN = 'ADMIN'
    TEACHER = 'TEACHER'
    STUDENT = 'STUDENT'


class Section(str, Enum):
    EINSTEIN_G11 = 'Grade 11 - Einstein'
    GALILEI_G12 = 'Grade 12 - Galilei'
    NONE = 'N/A'


class SubmissionStatus(str, Enum):
    ON_TIME = 'ON_TIME'
    LATE = 'LATE'


class Record(BaseModel):
    # Stored JSON uses camelCase keys; attributes stay snake_case.
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self):
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    @classmethod
    def aliased(cls, partial):
        """Re-key a partial dict (snake_case or camelCase) to the stored JSON keys."""
        data = {}
        for key, value in (partial or {}).items():
            field = cls.model_fields.get(key)
            data[field.alias if field is not None and field.alias else key] = value
        return data


class SubmissionFile(Record):
    name: str = ''
    type: str = ''
    data: str = ''  # base64 payload


class User(Record):
    id: str
    username: str = ''
    password: Optional[str] = None
    name: str = ''
    role: Role = Role.STUDENT
    section: Section = Section.NONE
    subject: Optional[str] = None


class Assignment(Record):
    id: str
    title: str = ''
    description: str = ''
    due_date: str = Field(default='', alias='dueDate')
    section: Section = Section.NONE
    teacher_id: str = Field(default='', alias='teacherId')
    teacher_name: str = Field(default='', alias='teacherName')
    subject: str = ''
    attachments: List[SubmissionFile] = Field(default_factory=list)
    created_at: str = Field(default='', alias='createdAt')


class Submission(Record):
    id: str
    assignment_id: str = Field(default='', alias='assignmentId')
    student_id: str = Field(default='', alias='studentId')
    student_name: str = Field(default='', alias='studentName')
    submitted_at: str = Field(default='', alias='submittedAt')
    files: List[SubmissionFile] = Field(default_factory=list)
    text_response: Optional[str] = Field(default=None, alias='textResponse')
    status: SubmissionStatus = SubmissionStatus.ON_TIME
