"""
Submission data models and schemas.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Region(str, Enum):
    """
    Organisational regions a submission can originate from.
    """
    NAIROBI = "nairobi"
    CENTRAL = "central"
    COAST = "coast"
    EASTERN = "eastern"
    NYANZA = "nyanza"
    RIFT_VALLEY = "rift-valley"
    WESTERN = "western"

    @property
    def display(self) -> str:
        return REGION_LABELS[self]


class SubmissionType(str, Enum):
    """
    Document categories accepted by the intake form.
    """
    MONTHLY_REPORT = "Monthly Report"
    FINANCIAL_STATEMENT = "Financial Statement"
    EVENT_PROPOSAL = "Event Proposal"
    MINISTRY_UPDATE = "Ministry Update"
    PROPERTY_DOCUMENTS = "Building/Property Documents"
    MEMBERSHIP_RECORDS = "Membership Records"
    PASTORAL_CREDENTIALS = "Pastoral Credentials"
    OTHER_DOCUMENTS = "Other Documents"


class Urgency(str, Enum):
    """
    Submitter-declared priority.
    """
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def display(self) -> str:
        return URGENCY_LABELS[self]


class SubmissionStatus(str, Enum):
    """
    Enumeration of review states in the submission lifecycle.
    """
    PENDING = "pending"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_ACTION = "requires-action"


REGION_LABELS = {
    Region.NAIROBI: "Nairobi Region",
    Region.CENTRAL: "Central Region",
    Region.COAST: "Coast Region",
    Region.EASTERN: "Eastern Region",
    Region.NYANZA: "Nyanza Region",
    Region.RIFT_VALLEY: "Rift Valley Region",
    Region.WESTERN: "Western Region",
}

URGENCY_LABELS = {
    Urgency.LOW: "Low Priority",
    Urgency.NORMAL: "Normal",
    Urgency.HIGH: "High Priority",
    Urgency.URGENT: "Urgent",
}


def region_display(value: str) -> str:
    """Display label for a stored region value, falling back to the raw value."""
    try:
        return Region(value).display
    except ValueError:
        return value


def urgency_display(value: str) -> str:
    """Display label for a stored urgency value, falling back to the raw value."""
    try:
        return Urgency(value).display
    except ValueError:
        return value


class SubmissionForm(BaseModel):
    """
    Validated, sanitised contents of the public submission form.

    Instances are only built by ``validate_submission_fields`` once every
    rule has passed, so the enum fields always hold members.

    Attributes:
        full_name: Submitter's full name (at most 100 characters)
        email: Contact email, lower-cased
        phone: Contact phone number
        position: Submitter's position or title
        branch: Branch name
        region: Originating region
        submission_type: Document category
        subject: Short subject line (at most 200 characters)
        description: Free-text description (at most 5000 characters)
        urgency: Declared priority, defaults to normal
    """
    full_name: str = Field(..., max_length=100)
    email: str
    phone: str
    position: str
    branch: str
    region: Region
    submission_type: SubmissionType
    subject: str = Field(..., max_length=200)
    description: str = Field(..., max_length=5000)
    urgency: Urgency = Urgency.NORMAL


class StatusUpdateRequest(BaseModel):
    """Request body for the review endpoint."""
    status: Optional[str] = None
    reviewedBy: Optional[str] = None
    reviewNotes: Optional[str] = None


class ClientMeta(BaseModel):
    """Provenance of a submission request."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
