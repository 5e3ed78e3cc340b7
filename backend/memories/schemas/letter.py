"""
Memories Backend: Letter API Schemas
=====================================
"""

from typing import List

from pydantic import BaseModel, Field

from memories.services.base import LetterReceipt


class LetterListResponse(BaseModel):
    letters: List[LetterReceipt] = Field(description="Newest first")
    count: int
