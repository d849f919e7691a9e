"""Immutable runtime configuration and the randomized fingerprint pools."""

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field

MODE_METADATA = "metadata"
MODE_VIDEO = "video"
MODE_BOTH = "both"
MODES = (MODE_METADATA, MODE_VIDEO, MODE_BOTH)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

VIEWPORTS: tuple[tuple[int, int], ...] = (
    (1920, 1080),
    (1366, 768),
    (1536, 864),
    (1440, 900),
    (1280, 720),
)


@dataclass(frozen=True, slots=True)
class Viewport:
    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class ExtractorConfig:
    batch_width: int = 2
    nav_timeout_ms: int = 60_000
    settle_min_ms: int = 2_000
    settle_max_ms: int = 4_000
    pre_nav_min_ms: int = 1_000
    pre_nav_max_ms: int = 2_000
    video_wait_ms: int = 12_000
    video_poll_ms: int = 1_000
    max_attempts: int = 3
    backoff_base_ms: int = 2_000
    backoff_multiplier: float = 1.5
    backoff_jitter_ms: int = 2_000
    batch_delay_min_ms: int = 5_000
    batch_delay_max_ms: int = 12_000
    stagger_max_ms: int = 2_000
    max_runtime_s: float = 330 * 60
    min_frame_px: int = 50
    accept_partial: bool = True
    mode: str = MODE_BOTH
    accept_language: str = "en-US,en;q=0.9"
    user_agents: tuple[str, ...] = USER_AGENTS
    viewports: tuple[Viewport, ...] = field(default_factory=lambda: tuple(Viewport(w, h) for w, h in VIEWPORTS))

    @property
    def extract_metadata(self) -> bool:
        return self.mode in (MODE_METADATA, MODE_BOTH)

    @property
    def extract_video(self) -> bool:
        return self.mode in (MODE_VIDEO, MODE_BOTH)

    def validate(self) -> "ExtractorConfig":
        if self.batch_width < 1:
            raise ValueError(f"batch_width must be >= 1 (got {self.batch_width})")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.nav_timeout_ms <= 0:
            raise ValueError("nav_timeout_ms must be positive")
        if self.video_poll_ms <= 0:
            raise ValueError("video_poll_ms must be positive")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        for lo, hi, name in (
            (self.batch_delay_min_ms, self.batch_delay_max_ms, "batch_delay"),
            (self.settle_min_ms, self.settle_max_ms, "settle"),
            (self.pre_nav_min_ms, self.pre_nav_max_ms, "pre_nav"),
        ):
            if lo < 0 or lo > hi:
                raise ValueError(f"{name} range is invalid ({lo} > {hi})")
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES} (got {self.mode!r})")
        if not self.user_agents or not self.viewports:
            raise ValueError("user_agents and viewports pools must not be empty")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "ExtractorConfig":
        """Build a config from the deployment environment; keyword overrides win."""

        env: dict[str, object] = {
            "batch_width": int(os.getenv("CONCURRENT_PAGES", "2")),
            "batch_delay_min_ms": int(os.getenv("BATCH_DELAY_MIN", "5000")),
            "batch_delay_max_ms": int(os.getenv("BATCH_DELAY_MAX", "12000")),
            "max_attempts": int(os.getenv("MAX_RETRIES", "3")),
            "nav_timeout_ms": int(os.getenv("NAV_TIMEOUT_MS", "60000")),
            "video_wait_ms": int(os.getenv("VIDEO_WAIT_MS", "12000")),
            "max_runtime_s": float(os.getenv("MAX_RUNTIME_MINUTES", "330")) * 60,
        }
        env.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**env).validate()  # type: ignore[arg-type]


def choose_user_agent(config: ExtractorConfig, rng: random.Random) -> str:
    return rng.choice(config.user_agents)


def choose_viewport(config: ExtractorConfig, rng: random.Random) -> Viewport:
    return rng.choice(config.viewports)


def uniform_ms(rng: random.Random, lo_ms: float, hi_ms: float) -> float:
    """Random delay in seconds drawn uniformly from a millisecond range."""

    return rng.uniform(lo_ms, hi_ms) / 1000.0


def scaled_ms(base_ms: float, multiplier: float, attempt: int) -> float:
    """``base_ms`` grown by ``multiplier`` per retry; attempt 1 returns the base."""

    return base_ms * (multiplier ** max(0, attempt - 1))


__all__ = [
    "ExtractorConfig",
    "MODES",
    "MODE_BOTH",
    "MODE_METADATA",
    "MODE_VIDEO",
    "USER_AGENTS",
    "VIEWPORTS",
    "Viewport",
    "choose_user_agent",
    "choose_viewport",
    "scaled_ms",
    "uniform_ms",
]
