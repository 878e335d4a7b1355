import asyncio
import logging
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import Settings

logger = logging.getLogger(__name__)

INPUT_NAME = "input.png"
OUTPUT_NAME = "output.png"


class GenerationFailed(Exception):
    pass


class OutputUnavailable(Exception):
    pass


@dataclass
class GenerationResult:
    image_bytes: bytes
    filename: Optional[str] = None


def build_args(
    settings: Settings,
    prompt: str,
    output_path: str,
    input_path: Optional[str] = None,
) -> list[str]:
    args = [
        "--diffusion-model", settings.diffusion_model,
        "--vae", settings.vae,
        "--clip_l", settings.clip_l,
        "--t5xxl", settings.t5xxl,
        "-p", prompt,
        "--cfg-scale", str(settings.cfg_scale),
        "--sampling-method", settings.sampling_method,
        "--seed", str(settings.seed),
        "-v",
        "-o", output_path,
    ]
    if input_path:
        args += ["-M", "edit", "-r", input_path]
    return args


class Generator:
    """
    Wraps the image-generation executable.

    At most one generation runs at a time (single-slot semaphore). Each run gets
    its own temporary directory for the input/output images, removed afterwards.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._slot = asyncio.Semaphore(1)

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    async def generate(
        self,
        prompt: str,
        image_bytes: Optional[bytes] = None,
        save: bool = True,
    ) -> GenerationResult:
        async with self._slot:
            with tempfile.TemporaryDirectory(prefix="sdbridge-") as workdir:
                data = await self._run_in(Path(workdir), prompt, image_bytes)

        filename = await asyncio.to_thread(self._save, data) if save else None
        return GenerationResult(image_bytes=data, filename=filename)

    async def _run_in(self, workdir: Path, prompt: str, image_bytes: Optional[bytes]) -> bytes:
        input_path: Optional[Path] = None
        if image_bytes:
            input_path = workdir / INPUT_NAME
            try:
                await asyncio.to_thread(input_path.write_bytes, image_bytes)
            except OSError as exc:
                raise GenerationFailed(f"failed to write input image: {exc}") from exc

        output_path = workdir / OUTPUT_NAME
        args = build_args(
            self.settings,
            prompt,
            str(output_path),
            str(input_path) if input_path else None,
        )
        logger.info("Running %s (edit mode: %s)", self.settings.sd_bin, input_path is not None)
        logger.debug("Arguments: %s", args)
        await self._execute(args)

        try:
            return await asyncio.to_thread(output_path.read_bytes)
        except OSError as exc:
            raise OutputUnavailable(f"failed to read {OUTPUT_NAME}: {exc}") from exc

    async def _execute(self, args: list[str]) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(self.settings.sd_bin, *args)
        except OSError as exc:
            raise GenerationFailed(f"could not start {self.settings.sd_bin}: {exc}") from exc

        try:
            returncode = await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                logger.warning("Request cancelled, killing %s (pid %s)", self.settings.sd_bin, proc.pid)
                proc.kill()
                await proc.wait()
            raise

        if returncode != 0:
            raise GenerationFailed(f"{self.settings.sd_bin} exited with status {returncode}")

    def _save(self, data: bytes) -> str:
        out_dir = Path(self.settings.output_dir)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputUnavailable(f"failed to create output directory: {exc}") from exc

        filename = f"output_{time.time_ns()}.png"
        try:
            (out_dir / filename).write_bytes(data)
        except OSError as exc:
            raise OutputUnavailable(f"failed to save generated image: {exc}") from exc

        logger.info("Saved generated image to %s", out_dir / filename)
        return filename
