"""Settings for sra-fetch, read from an optional ``sra_fetch.toml``.

The file holds a single ``[fetch]`` table::

    [fetch]
    sra_lib = "/opt/sratoolkit/bin"
    zipped = true
    parallel = 4
    batch_size = 100
    skip_completed = true

Command-line options override file values.
"""
from __future__ import annotations

import os
import tomllib
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, field_validator

from sra_fetch.dump import SRALIB_ENV
from sra_fetch.resolve import DEFAULT_BATCH_SIZE

DEFAULT_CONFIG_NAME = "sra_fetch.toml"


class FetchConfig(BaseModel):
    """Options controlling a fetch."""

    sra_lib: str | None = None
    output_dir: str | None = None
    zipped: bool = False
    parallel: int = Field(default=1, ge=1)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    skip_completed: bool = False
    clear: bool = False
    ncbi_email: str | None = None
    ncbi_api_key: str | None = None
    ncbi_tool: str = "sra-fetch"

    @field_validator("sra_lib", "output_dir", "ncbi_email", "ncbi_api_key")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    def resolved_sra_lib(self) -> str | None:
        """Return ``sra_lib``, falling back to the ``SRALIB`` environment variable."""
        return self.sra_lib or os.environ.get(SRALIB_ENV) or None


def load_config(path: Path | str | None) -> FetchConfig:
    """Read a config TOML file; a missing *path* gives the defaults."""
    if path is None:
        return FetchConfig()
    data = tomllib.loads(Path(path).read_text())
    return FetchConfig(**data.get("fetch", {}))


def save_config(cfg: FetchConfig, path: Path | str) -> None:
    """Write *cfg* as a ``[fetch]`` table, omitting unset values."""
    data = {"fetch": cfg.model_dump(exclude_none=True)}
    Path(path).write_bytes(tomli_w.dumps(data).encode())
