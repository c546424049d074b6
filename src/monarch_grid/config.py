"""Runtime settings for the dynamic grid, read from ``MONARCH_*`` environment variables."""

import os
from dataclasses import dataclass, field
from functools import lru_cache

from reflex.utils import console

_DEFAULT_API_BASE_URL: str = "http://localhost:8080"
_DEFAULT_TIMEOUT_SECONDS: float = 30.0
_DEFAULT_PAGE_SIZE: int = 10
_DEFAULT_MOBILE_PAGE_SIZE: int = 5
_DEFAULT_PAGE_SIZE_OPTIONS: tuple[int, ...] = (5, 10, 20, 50, 100)
_DEFAULT_DEBOUNCE_SECONDS: float = 0.5
_DEFAULT_SCROLL_TOP_THRESHOLD: int = 10
_DEFAULT_SITE_ID: int = 1


def _env_number(name: str, default: float, cast: type = float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        console.warn(f"[DynamicGrid] Ignoring invalid {name}={raw!r}; using {default}")
        return default
    if value <= 0:
        console.warn(f"[DynamicGrid] Ignoring non-positive {name}={raw!r}; using {default}")
        return default
    return value


@dataclass(frozen=True)
class GridSettings:
    """Connection and behavior defaults shared by every grid instance."""

    api_base_url: str = _DEFAULT_API_BASE_URL
    timeout: float = _DEFAULT_TIMEOUT_SECONDS
    page_size: int = _DEFAULT_PAGE_SIZE
    mobile_page_size: int = _DEFAULT_MOBILE_PAGE_SIZE
    page_size_options: tuple[int, ...] = field(default=_DEFAULT_PAGE_SIZE_OPTIONS)
    debounce_seconds: float = _DEFAULT_DEBOUNCE_SECONDS
    scroll_top_threshold: int = _DEFAULT_SCROLL_TOP_THRESHOLD
    default_site_id: int = _DEFAULT_SITE_ID

    @classmethod
    def from_env(cls) -> "GridSettings":
        """Build settings from the environment, falling back to defaults.

        Recognised variables:

        * ``MONARCH_API_BASE_URL`` -- backend base URL.
        * ``MONARCH_API_TIMEOUT`` -- request timeout in seconds.
        * ``MONARCH_PAGE_SIZE`` -- initial desktop page size.
        * ``MONARCH_DEBOUNCE_MS`` -- auto-search quiescence window.
        """
        base_url = os.environ.get("MONARCH_API_BASE_URL", "").strip() or _DEFAULT_API_BASE_URL
        debounce_ms = _env_number("MONARCH_DEBOUNCE_MS", _DEFAULT_DEBOUNCE_SECONDS * 1000)
        return cls(
            api_base_url=base_url.rstrip("/"),
            timeout=_env_number("MONARCH_API_TIMEOUT", _DEFAULT_TIMEOUT_SECONDS),
            page_size=int(_env_number("MONARCH_PAGE_SIZE", _DEFAULT_PAGE_SIZE, int)),
            debounce_seconds=debounce_ms / 1000,
        )


@lru_cache(maxsize=1)
def get_settings() -> GridSettings:
    """Process-wide settings, read from the environment on first use."""
    return GridSettings.from_env()
