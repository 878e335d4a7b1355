# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx

from ..models.chat import ImagePart, Message, TextPart

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:image/"
BASE64_MARKER = "base64,"

# http(s) URLs, or absolute paths not glued to a preceding word/URL character.
_PNG_REFERENCE = re.compile(r"(?:https?://\S+|(?<![\w./:])/[^\s()\[\]<>\"']+)\.png\b")


class InvalidBase64(Exception):
    pass


class ImageFetchFailed(Exception):
    def __init__(self, message: str, prompt: str = ""):
        super().__init__(message)
        self.prompt = prompt


@dataclass
class ExtractionResult:
    prompt: str
    image_bytes: Optional[bytes] = None


# ---------------------------------------------------------------------------
# Data URIs
# ---------------------------------------------------------------------------

def decode_data_uri(url: str) -> Optional[bytes]:
    """Decode a ``data:image/...;base64,`` URI.

    Returns None when ``url`` is not a base64 image data URI, raises
    InvalidBase64 when it is one but the payload does not decode.
    """
    if not url.startswith(DATA_URI_PREFIX):
        return None
    idx = url.find(BASE64_MARKER)
    if idx == -1:
        return None

    raw = url[idx + len(BASE64_MARKER):].replace("\r", "").replace("\n", "")
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidBase64(f"invalid base64 image data: {exc}") from exc


def find_png_references(text: str) -> list[str]:
    return _PNG_REFERENCE.findall(text)


# ---------------------------------------------------------------------------
# Remote images
# ---------------------------------------------------------------------------

@dataclass
class ImageFetcher:
    base_url: str
    verify_tls: bool = False
    timeout: float = 30.0
    transport: Optional[httpx.AsyncBaseTransport] = None

    def resolve(self, reference: str) -> Optional[str]:
        url = reference
        if url.startswith("/"):
            url = self.base_url.rstrip("/") + url
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        return url

    async def fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                verify=self.verify_tls,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ImageFetchFailed(f"failed to fetch image from URL: {exc}") from exc

        if response.status_code != 200:
            raise ImageFetchFailed(f"image URL returned status: {response.status_code}")
        return response.content


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

async def extract_strict(messages: list[Message], fetcher: Optional[ImageFetcher] = None) -> ExtractionResult:
    """Only user messages count: all their text joined, last inline image wins."""
    texts: list[str] = []
    image_bytes: Optional[bytes] = None

    for message in messages:
        if message.role != "user":
            continue
        for part in message.content:
            if isinstance(part, TextPart):
                texts.append(part.text)
            elif isinstance(part, ImagePart):
                data = decode_data_uri(part.image_url.url)
                if data is not None:
                    image_bytes = data

    return ExtractionResult(prompt=" ".join(texts).strip(), image_bytes=image_bytes or None)


async def extract_lenient(messages: list[Message], fetcher: Optional[ImageFetcher] = None) -> ExtractionResult:
    """Last text of any role is the prompt; images may be inline or referenced by a .png URL/path."""
    last_text = ""
    image_bytes: Optional[bytes] = None
    reference: Optional[str] = None

    for message in messages:
        for part in message.content:
            if isinstance(part, TextPart):
                last_text = part.text
                matches = find_png_references(part.text)
                if matches:
                    reference = matches[-1]
            elif isinstance(part, ImagePart):
                url = part.image_url.url
                if url.startswith(DATA_URI_PREFIX):
                    try:
                        data = decode_data_uri(url)
                    except InvalidBase64 as exc:
                        logger.warning("Invalid base64 image skipped: %s", exc)
                        continue
                    if data is not None:
                        image_bytes = data
                elif url.endswith(".png"):
                    reference = url

    prompt = last_text.strip()

    if not image_bytes and reference and fetcher is not None:
        url = fetcher.resolve(reference)
        if url:
            logger.info("Fetching referenced image %s", url)
            try:
                image_bytes = await fetcher.fetch(url)
            except ImageFetchFailed as exc:
                exc.prompt = prompt
                raise

    return ExtractionResult(prompt=prompt, image_bytes=image_bytes or None)


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

Strategy = Callable[[list[Message], Optional[ImageFetcher]], Awaitable[ExtractionResult]]

STRATEGIES: dict[str, Strategy] = {
    "strict": extract_strict,
    "lenient": extract_lenient,
}


async def extract(
    messages: list[Message],
    mode: str = "lenient",
    fetcher: Optional[ImageFetcher] = None,
) -> ExtractionResult:
    try:
        strategy = STRATEGIES[mode]
    except KeyError:
        raise ValueError(f"Unknown extraction mode: {mode!r}") from None
    return await strategy(messages, fetcher)
