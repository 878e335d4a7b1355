# tests/conftest.py
from __future__ import annotations

import stat
import textwrap
from contextlib import ExitStack
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from sdbridge.config import Settings
from sdbridge.main import create_app


@pytest.fixture
def record_dir(tmp_path: Path) -> Path:
    path = tmp_path / "record"
    path.mkdir()
    return path


@pytest.fixture
def write_script(tmp_path: Path):
    """Write an executable /bin/sh script into tmp_path and return its path."""

    def _write(name: str, body: str) -> Path:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body).lstrip())
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _write


@pytest.fixture
def fake_sd(write_script, record_dir: Path) -> Path:
    # Records its arguments one per line, copies the -r input and writes the -o output.
    return write_script(
        "sd",
        f"""
        out=""
        ref=""
        : > "{record_dir}/args.txt"
        while [ $# -gt 0 ]; do
          printf '%s\\n' "$1" >> "{record_dir}/args.txt"
          case "$1" in
            -o) out="$2" ;;
            -r) ref="$2" ;;
          esac
          shift
        done
        if [ -n "$ref" ]; then
          cp "$ref" "{record_dir}/input.png"
          printf '%s' "$ref" > "{record_dir}/input_path.txt"
        fi
        printf 'generated-image' > "$out"
        """,
    )


@pytest.fixture
def recorded_args(record_dir: Path):
    def _read() -> list[str]:
        return (record_dir / "args.txt").read_text().splitlines()

    return _read


@pytest.fixture
def make_settings(tmp_path: Path, fake_sd: Path):
    def _make(**overrides) -> Settings:
        values = {
            "sd_bin": str(fake_sd),
            "diffusion_model": "flux1-schnell.gguf",
            "vae": "ae.safetensors",
            "clip_l": "clip_l.safetensors",
            "t5xxl": "t5xxl_fp16.safetensors",
            "output_dir": str(tmp_path / "generated"),
            "image_base_url": "http://images.test",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def make_client(make_settings):
    with ExitStack() as stack:

        def _make(**overrides) -> TestClient:
            return stack.enter_context(TestClient(create_app(make_settings(**overrides))))

        yield _make
