from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ExtractionMode = Literal["strict", "lenient"]
ResponseFormat = Literal["markdown", "html"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    sd_bin: str = "sd"
    diffusion_model: str = ""
    vae: str = ""
    clip_l: str = ""
    t5xxl: str = ""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    output_dir: str = "generated"
    output_url_prefix: str = "/generated"
    response_format: ResponseFormat = "markdown"

    extraction_mode: ExtractionMode = "lenient"
    # Origin for bare /... image paths; defaults to this service on its own port.
    image_base_url: str = ""
    verify_image_tls: bool = False
    image_fetch_timeout: float = 30.0

    cfg_scale: float = 1.0
    sampling_method: str = "euler"
    seed: int = -1

    @model_validator(mode="after")
    def default_image_base_url(self) -> "Settings":
        if not self.image_base_url:
            self.image_base_url = f"http://127.0.0.1:{self.port}"
        return self

    def missing_model_paths(self) -> list[str]:
        return [
            name
            for name in ("diffusion_model", "vae", "clip_l", "t5xxl")
            if not getattr(self, name)
        ]


settings = Settings()
