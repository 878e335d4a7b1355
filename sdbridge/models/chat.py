from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class ImageURL(BaseModel):
    url: str


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageURL = Field(description="URL, path or data URI of the referenced image.")


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class Message(BaseModel):
    role: str
    content: list[ContentPart] = Field(..., min_length=1)


class ChatRequest(BaseModel):
    model: str = ""
    messages: list[Message]


# ─────────────────────────────────────────────
# Response
# ─────────────────────────────────────────────

class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class ChatChoice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: Literal["stop"] = "stop"


class ChatCompletionResponse(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[ChatChoice]
