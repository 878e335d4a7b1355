import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, HTTPException, Request, status
from starlette.requests import ClientDisconnect

from ..config import Settings
from ..models.chat import ChatCompletionResponse
from ..services.extractor import ImageFetchFailed, InvalidBase64, extract
from ..services.formatter import build_completion, render_content
from ..services.generator import GenerationFailed, Generator, OutputUnavailable
from ..services.normalizer import MalformedContent, MalformedJSON, parse_chat_request

router = APIRouter(tags=["Chat"])
logger = logging.getLogger(__name__)

T = TypeVar("T")

DISCONNECT_POLL_SECONDS = 0.5
HTTP_499_CLIENT_CLOSED_REQUEST = 499


class ClientGone(Exception):
    pass


async def run_while_connected(request: Request, work: Awaitable[T], poll_interval: float = DISCONNECT_POLL_SECONDS) -> T:
    """Await `work`, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise ClientGone()
    except asyncio.CancelledError:
        task.cancel()
        raise


# ─────────────────────────────────────────────
# POST /v1/chat/completions
# Normalize → Extract prompt/image → Generate → Format
# ─────────────────────────────────────────────

@router.post("/v1/chat/completions", response_model=ChatCompletionResponse)
async def chat_completions(request: Request) -> ChatCompletionResponse:
    settings: Settings = request.app.state.settings
    generator: Generator = request.app.state.generator

    # 1. Read and normalize the body
    try:
        body = await request.body()
    except (ClientDisconnect, OSError) as exc:
        logger.error("Body read error: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read request body",
        )

    logger.debug("Raw JSON request: %s", body.decode("utf-8", errors="replace"))

    try:
        chat = parse_chat_request(body)
    except (MalformedJSON, MalformedContent) as exc:
        logger.warning("Request decode error: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid request: {exc}")

    # 2. Extract prompt and optional input image
    try:
        extraction = await extract(chat.messages, settings.extraction_mode, request.app.state.image_fetcher)
    except InvalidBase64 as exc:
        logger.warning("Prompt/Image extraction error: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except ImageFetchFailed as exc:
        logger.warning("Prompt/Image extraction error: %s (prompt: %r)", exc, exc.prompt)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    logger.info("Prompt: %s", extraction.prompt)
    if extraction.image_bytes:
        logger.info("Image data: %d bytes", len(extraction.image_bytes))
    else:
        logger.info("Image data: <none>")

    if not extraction.prompt:
        logger.warning("No user prompt provided")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No user prompt provided")

    # 3. Generate
    try:
        result = await run_while_connected(
            request,
            generator.generate(
                extraction.prompt,
                extraction.image_bytes,
                save=settings.response_format == "markdown",
            ),
            DISCONNECT_POLL_SECONDS,
        )
    except ClientGone:
        logger.warning("Client disconnected, generation cancelled")
        raise HTTPException(status_code=HTTP_499_CLIENT_CLOSED_REQUEST, detail="Client disconnected")
    except GenerationFailed as exc:
        logger.error("Command failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to run model")
    except OutputUnavailable as exc:
        logger.error("Output unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve generated image",
        )

    # 4. Format
    content = render_content(result, settings.response_format, settings.output_url_prefix)
    response = build_completion(chat.model, content)
    logger.debug("Response JSON: %s", response.model_dump_json(indent=2))
    return response
