"""
Command-line entrypoint.

    sd-chat-bridge --sd-bin ./sd --diffusion-model flux.gguf --vae ae.safetensors \
        --clip_l clip_l.safetensors --t5xxl t5xxl.safetensors --port 8080

Flags override values from the environment / .env file.
"""
import argparse
import logging
from typing import Optional

import uvicorn

from .config import Settings
from .main import create_app

_FLAGS = {
    "sd_bin": ("--sd-bin", "Path to the sd binary"),
    "diffusion_model": ("--diffusion-model", "Path to diffusion model"),
    "vae": ("--vae", "Path to VAE file"),
    "clip_l": ("--clip_l", "Path to CLIP_L file"),
    "t5xxl": ("--t5xxl", "Path to T5XXL file"),
    "host": ("--host", "Interface to bind"),
    "output_dir": ("--output-dir", "Directory to save generated images"),
    "image_base_url": ("--image-base-url", "Origin for bare /... image paths (default: this server on --port)"),
    "log_level": ("--log-level", "Logging level (DEBUG, INFO, ...)"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sd-chat-bridge", description=__doc__.strip().splitlines()[0])
    for dest, (flag, help_text) in _FLAGS.items():
        parser.add_argument(flag, dest=dest, default=None, help=help_text)
    parser.add_argument("--port", type=int, default=None, help="Port to run the web server on")
    parser.add_argument("--extraction-mode", dest="extraction_mode", choices=["strict", "lenient"], default=None)
    parser.add_argument("--response-format", dest="response_format", choices=["markdown", "html"], default=None)
    return parser


def load_settings(argv: Optional[list[str]] = None) -> Settings:
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}
    return Settings(**overrides)


def main(argv: Optional[list[str]] = None) -> None:
    config = load_settings(argv)

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    missing = config.missing_model_paths()
    if missing:
        build_parser().error(
            "All model component paths must be provided via flags (missing: "
            + ", ".join("--" + name.replace("diffusion_model", "diffusion-model") for name in missing)
            + ")."
        )

    logging.getLogger(__name__).info("Server running on http://%s:%d", config.host, config.port)
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
