from typing import Literal

from pydantic import BaseModel, StrictStr, field_validator

from inference_relay.gateway.types import ChatTurn, Sender


class ChatTurnIn(BaseModel):
    sender: Literal["user", "agent"]
    text: StrictStr

    def to_turn(self) -> ChatTurn:
        return ChatTurn(sender=Sender(self.sender), text=self.text)


class ConversationContext(BaseModel):
    """Context block in the shape the front relay forwards it."""

    long_term_memory_summary: StrictStr | None = None
    current_conversation: list[ChatTurnIn] | None = None


class ImageRequest(BaseModel):
    message: StrictStr

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message must not be empty")
        return v


class GenerateRequest(ImageRequest):
    history: list[ChatTurnIn] | None = None
    model: StrictStr | None = None
    instruction: StrictStr | None = None
    memory_summary: StrictStr | None = None
    context: ConversationContext | None = None

    def turns(self) -> list[ChatTurn]:
        source = self.history
        if source is None and self.context is not None:
            source = self.context.current_conversation
        return [turn.to_turn() for turn in source or []]

    def summary(self) -> str | None:
        if self.memory_summary is not None:
            return self.memory_summary
        if self.context is not None:
            return self.context.long_term_memory_summary
        return None


class ResponseEnvelope(BaseModel):
    response: str | None = None
    image_url: str | None = None
    error: str | None = None

    def to_content(self) -> dict:
        return self.model_dump(exclude_none=True)
