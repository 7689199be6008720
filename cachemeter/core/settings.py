from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)

ENV_PREFIX = "CACHEMETER_"


@dataclass(frozen=True)
class Settings:
    common_tags: tuple[tuple[str, str], ...]
    strict_reads: bool


def _env(name: str) -> str | None:
    return os.getenv(ENV_PREFIX + name)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_common_tags(raw: str | None) -> tuple[tuple[str, str], ...]:
    """Parse ``key=value,key2=value2`` into ordered pairs.

    Blank entries are skipped; malformed ones are dropped with a warning so a
    typo in the environment never prevents metrics from being bound.
    """

    if not raw:
        return ()
    pairs: list[tuple[str, str]] = []
    for chunk in raw.split(","):
        item = chunk.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            logger.warning("Ignoring malformed common tag %r in %sCOMMON_TAGS", item, ENV_PREFIX)
            continue
        pairs.append((key, value))
    return tuple(pairs)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        common_tags=_parse_common_tags(_env("COMMON_TAGS")),
        strict_reads=_get_bool("STRICT_READS", default=False),
    )


__all__ = ["ENV_PREFIX", "Settings", "get_settings"]
