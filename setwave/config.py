"""Runtime settings — environment (and .env) first, CLI flags on top."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace

from dotenv import load_dotenv

from .osc import LOCAL_PORT, REMOTE_PORT
from .renderer import RESOLUTION
from .transport import DISPLAY_PORT

ENV_PREFIX = "SETWAVE_"


@dataclass(frozen=True)
class Settings:
    live_host: str = "127.0.0.1"
    live_port: int = REMOTE_PORT
    client_port: int = LOCAL_PORT
    display_host: str = "127.0.0.1"
    display_port: int = DISPLAY_PORT
    resolution: int = RESOLUTION
    dynamics_prefix: str = "Dynamics"
    sections_prefix: str = "Sections"
    workers: int = 4
    send_interval: float = 0.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None, dotenv: bool = True) -> "Settings":
        """Build settings from SETWAVE_* variables; unset ones keep defaults."""
        if dotenv:
            load_dotenv()
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            var = ENV_PREFIX + f.name.upper()
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(var, raw, type(getattr(cls, f.name)))
        return cls(**values)

    def override(self, **kwargs) -> "Settings":
        """Copy with the given fields replaced; None values are ignored."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def validate(self) -> "Settings":
        if self.resolution < 1:
            raise ValueError(f"resolution must be >= 1, got {self.resolution}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.send_interval < 0:
            raise ValueError(f"send_interval must be >= 0, got {self.send_interval}")
        return self


def _coerce(var, raw, kind):
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{var}={raw!r} is not a valid {kind.__name__}") from None
