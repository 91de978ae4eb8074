"""
Pydantic schemas for API request/response validation.

The web client speaks camelCase; fields are declared in snake_case and
aliased. Either spelling is accepted on input.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional

from exam_sorter.core.labels import LabelAction


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Upload Schemas
# ============================================================================

class UploadResponse(CamelModel):
    """Result of a batch upload."""
    success: bool = True
    total_students: int
    message: str


# ============================================================================
# Student Schemas
# ============================================================================

class StudentSummary(CamelModel):
    """One roster entry."""
    student_id: int
    student_name: str
    filename: Optional[str] = None
    page_count: Optional[int] = None
    status: str
    error: Optional[str] = None
    labeled_pages: int = 0


class StudentInfoResponse(StudentSummary):
    """Roster entry with its current label assignment."""
    label_assignment: Dict[str, List[int]] = Field(default_factory=dict)
    missing_pages: List[int] = Field(default_factory=list)


class LabelEventRequest(CamelModel):
    """A single label add/remove event for one page."""
    page: int = Field(ge=1)
    problem: Optional[int] = None
    action: LabelAction = LabelAction.ADD


class LabelAssignmentResponse(CamelModel):
    student_id: int
    label_assignment: Dict[str, List[int]]


# ============================================================================
# Labeling Schemas
# ============================================================================

class SubmitLabelsRequest(CamelModel):
    """Submit a student's name and page labels for processing."""
    student_id: int
    student_name: str = ""
    label_assignment: Dict[str, List[int]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("labelAssignment", "pageLabels", "label_assignment")
    )


class AckResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


# ============================================================================
# Finalize Schemas
# ============================================================================

class FinalizeResponse(CamelModel):
    success: bool = True
    problems: List[int]
    message: str


# ============================================================================
# Status Schemas
# ============================================================================

class StudentErrorSchema(CamelModel):
    student_id: int
    student_name: str
    error: str


class ResourceStatsSchema(CamelModel):
    original_bytes: int = 0
    stamped_bytes: int = 0
    stamped_pages: int = 0
    final_bytes: int = 0
    active_tasks: int = 0


class StatusResponse(CamelModel):
    """Session status for polling clients."""
    total_students: int
    labeled_students: int
    pending_students: int
    processing_students: int
    completed_students: int
    error_students: int
    problems: List[int]
    is_finalized: bool
    errors: List[StudentErrorSchema] = Field(default_factory=list)
    resources: ResourceStatsSchema = Field(default_factory=ResourceStatsSchema)
