"""Wire types for the Gemini generateContent endpoint.

These exist only to match the remote JSON schema:

    request   {"system_instruction": {"role", "parts": [{"text"}]},
               "contents": [{"role", "parts": [{"text"}]}]}
    response  {"candidates": [{"content": {"parts": [{"text"}]}}]}

Response-side fields are all optional because the backend omits them freely
(safety blocks, empty completions); the live client decides what is missing.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

ROLE_SYSTEM = "system"
ROLE_USER = "user"


class Part(BaseModel):
    text: str


class Content(BaseModel):
    role: str
    parts: list[Part]


class GenerateContentRequest(BaseModel):
    system_instruction: Content
    contents: list[Content]


class CandidatePart(BaseModel):
    text: str | None = None


class CandidateContent(BaseModel):
    parts: list[CandidatePart] | None = None


class Candidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: CandidateContent | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")

    def first_text(self) -> str | None:
        if self.content is None or not self.content.parts:
            return None
        return self.content.parts[0].text


class GenerateContentResponse(BaseModel):
    candidates: list[Candidate] | None = None
