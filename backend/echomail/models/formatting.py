"""
Pydantic models for the HTML formatting pipeline.
"""

from typing import Dict, List
from pydantic import BaseModel, Field


class FormatterOptions(BaseModel):
    """Switches for the individual formatting steps. All on by default."""
    convert_emojis: bool = True
    sanitize: bool = True
    inline_styles: bool = True
    wrap_for_gmail: bool = True


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class FormattingResult(BaseModel):
    """Formatted HTML plus what the pipeline noticed along the way."""
    html: str
    success: bool = True
    emoji_converted: bool = False
    warnings: List[str] = Field(default_factory=list)
    debug: Dict[str, int] = Field(default_factory=dict)
