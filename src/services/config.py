from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from redis.connection import parse_url

from database.remote_store import RedisRemoteStore


def _load_env_file(env_path: Optional[Path] = None) -> None:
    path = env_path or Path(__file__).resolve().parents[2] / ".env"
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    socket_timeout: Optional[float] = 5.0

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "RedisConfig":
        """Read ``REDIS_URI`` or the individual ``REDIS_*`` variables.

        A URI wins over the individual variables; only ``redis://`` and
        ``rediss://`` are accepted.
        """
        _load_env_file(env_path)
        timeout = _env_float("REDIS_SOCKET_TIMEOUT", cls.socket_timeout)

        uri = os.getenv("REDIS_URI")
        if uri:
            if not uri.startswith(("redis://", "rediss://")):
                raise ValueError(f"Unsupported Redis URI: {uri!r}")
            parts = parse_url(uri)
            return cls(
                host=parts.get("host", cls.host),
                port=parts.get("port", cls.port),
                db=parts.get("db", cls.db),
                password=parts.get("password"),
                socket_timeout=timeout,
            )

        return cls(
            host=os.getenv("REDIS_HOST", cls.host),
            port=_env_int("REDIS_PORT", cls.port),
            db=_env_int("REDIS_DB", cls.db),
            password=os.getenv("REDIS_PASSWORD") or None,
            socket_timeout=timeout,
        )

    def create_store(self) -> RedisRemoteStore:
        return RedisRemoteStore(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            socket_timeout=self.socket_timeout,
        )


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path = Path.home() / ".fithub"
    sweep_interval: float = 300.0
    probe_host: str = "8.8.8.8"
    probe_port: int = 53
    probe_interval: float = 10.0

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "AppConfig":
        _load_env_file(env_path)
        data_dir = os.getenv("FITHUB_DATA_DIR")

        return cls(
            data_dir=Path(data_dir).expanduser() if data_dir else cls.data_dir,
            sweep_interval=_env_float("FITHUB_SWEEP_INTERVAL", cls.sweep_interval),
            probe_host=os.getenv("FITHUB_PROBE_HOST", cls.probe_host),
            probe_port=_env_int("FITHUB_PROBE_PORT", cls.probe_port),
            probe_interval=_env_float("FITHUB_PROBE_INTERVAL", cls.probe_interval),
        )

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"
