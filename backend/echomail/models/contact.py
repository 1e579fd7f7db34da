"""
Pydantic models for contacts and templates.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class ContactCreate(BaseModel):
    email: str
    name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email must contain '@'")
        return v


class ContactUpdate(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    tags: Optional[List[str]] = None


class Contact(ContactCreate):
    id: str
    user_email: str
    created_at: Optional[str] = None


class TemplateCreate(BaseModel):
    name: str
    subject: str
    content: str
    category: Optional[str] = None
    description: Optional[str] = None


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class Template(TemplateCreate):
    id: str
    user_email: str
    created_at: Optional[str] = None
