import base64
import time
import uuid

from ..models.chat import AssistantMessage, ChatChoice, ChatCompletionResponse
from .generator import GenerationResult


def render_content(result: GenerationResult, response_format: str, url_prefix: str = "/generated") -> str:
    if response_format == "html":
        encoded = base64.b64encode(result.image_bytes).decode()
        return f'<img src="data:image/png;base64,{encoded}" alt="output" />'

    if not result.filename:
        raise ValueError("Markdown responses need an image saved to the output directory.")
    return f"![output]({url_prefix.rstrip('/')}/{result.filename})"


def build_completion(model: str, content: str) -> ChatCompletionResponse:
    return ChatCompletionResponse(
        id=f"chatcmpl-{uuid.uuid4().hex}",
        created=int(time.time()),
        model=model,
        choices=[ChatChoice(index=0, message=AssistantMessage(content=content))],
    )
