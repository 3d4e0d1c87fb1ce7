from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class CompletionRequest(BaseModel):
    model: str
    messages: List[Message]


class ChoiceMessage(BaseModel):
    # Providers occasionally send roles outside our enum; only content matters.
    role: str = "assistant"
    content: str = ""


class Choice(BaseModel):
    message: ChoiceMessage


class CompletionResponse(BaseModel):
    choices: List[Choice] = Field(default_factory=list)
