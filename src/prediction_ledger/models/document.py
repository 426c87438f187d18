"""Versioned document models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class DocumentFamily(StrEnum):
    """Storage family a versioned document belongs to."""

    CONTEXT = "context"
    KPI = "kpi"


class VersionedDocument(BaseModel):
    """One immutable version of a named document within a community context."""

    family: DocumentFamily = DocumentFamily.CONTEXT
    name: str
    community_context: str
    content: str
    version: int = Field(ge=0)
    created_at: datetime


class KpiDocument(VersionedDocument):
    """A versioned KPI document (team/manager facts) with descriptive metadata."""

    family: DocumentFamily = DocumentFamily.KPI
    description: str = ""
    document_type: str = ""
    tags: list[str] = Field(default_factory=list)


class ContextDocument(BaseModel):
    """A named text blob handed to the prediction oracle."""

    name: str
    content: str
