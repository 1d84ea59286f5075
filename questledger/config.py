"""
questledger.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for the engine's calendar and retry settings plus
the reward tuning knobs.  Every key is optional; an empty file (or one
that only sets ``timezone``) reproduces the stock reward formula.

Usage::

    from questledger.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.timezone)                  # "Asia/Bangkok"
    print(cfg.reward.streak_tiers)       # ((30, 200), (14, 100), (7, 50), (3, 10))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from questledger.constants import (
    DEFAULT_LEDGER_MAX_ATTEMPTS,
    DEFAULT_TIMEZONE,
    FIRST_QUEST_RATIO,
    PERFECT_SCORE_RATIO,
    PERFORMANCE_FLOOR,
    PERFORMANCE_SPAN,
    STREAK_BONUS_TIERS,
)


class ConfigError(ValueError):
    """A configuration value is present but malformed."""


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardTuning:
    """Numeric knobs of the reward formula.

    Defaults are the canonical values from :mod:`questledger.constants`.
    """

    performance_floor: float = PERFORMANCE_FLOOR
    performance_span: float = PERFORMANCE_SPAN
    perfect_score_ratio: float = PERFECT_SCORE_RATIO
    first_quest_ratio: float = FIRST_QUEST_RATIO
    streak_tiers: tuple[tuple[int, int], ...] = STREAK_BONUS_TIERS


@dataclass(frozen=True, slots=True)
class QuestLedgerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Calendar day boundaries for streaks and the first-quest bonus
    timezone: str = DEFAULT_TIMEZONE

    # Bounded retries when the ledger reports a concurrent modification
    ledger_max_attempts: int = DEFAULT_LEDGER_MAX_ATTEMPTS

    reward: RewardTuning = field(default_factory=RewardTuning)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _parse_streak_tiers(raw: object) -> tuple[tuple[int, int], ...]:
    """Accept ``{30: 200, 14: 100}`` and return tiers sorted highest first."""
    if not isinstance(raw, dict) or not raw:
        raise ConfigError("reward.streak_tiers must be a non-empty mapping of days -> tokens")
    try:
        tiers = [(int(days), int(tokens)) for days, tokens in raw.items()]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"reward.streak_tiers has a non-integer entry: {exc}") from exc
    if any(days < 1 or tokens < 0 for days, tokens in tiers):
        raise ConfigError("reward.streak_tiers days must be >= 1 and tokens >= 0")
    return tuple(sorted(tiers, reverse=True))


def _parse_reward(raw: dict | None) -> RewardTuning:
    if not raw:
        return RewardTuning()
    if not isinstance(raw, dict):
        raise ConfigError("reward must be a mapping")

    defaults = RewardTuning()
    try:
        tuning = RewardTuning(
            performance_floor=float(raw.get("performance_floor", defaults.performance_floor)),
            performance_span=float(raw.get("performance_span", defaults.performance_span)),
            perfect_score_ratio=float(raw.get("perfect_score_ratio", defaults.perfect_score_ratio)),
            first_quest_ratio=float(raw.get("first_quest_ratio", defaults.first_quest_ratio)),
            streak_tiers=(
                _parse_streak_tiers(raw["streak_tiers"])
                if "streak_tiers" in raw
                else defaults.streak_tiers
            ),
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"reward tuning value is not numeric: {exc}") from exc

    if tuning.performance_floor < 0 or tuning.performance_span < 0:
        raise ConfigError("performance_floor and performance_span must be >= 0")
    if tuning.perfect_score_ratio < 0 or tuning.first_quest_ratio < 0:
        raise ConfigError("bonus ratios must be >= 0")
    return tuning


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_config(raw: dict | None) -> QuestLedgerConfig:
    """Build a :class:`QuestLedgerConfig` from an already-decoded mapping."""
    raw = raw or {}

    timezone = str(raw.get("timezone", DEFAULT_TIMEZONE))
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {timezone!r}") from exc

    try:
        attempts = int(raw.get("ledger_max_attempts", DEFAULT_LEDGER_MAX_ATTEMPTS))
    except (TypeError, ValueError) as exc:
        raise ConfigError("ledger_max_attempts must be an integer") from exc
    if attempts < 1:
        raise ConfigError("ledger_max_attempts must be >= 1")

    return QuestLedgerConfig(
        timezone=timezone,
        ledger_max_attempts=attempts,
        reward=_parse_reward(raw.get("reward")),
    )


def load_config(path: str | Path = "config.yaml") -> QuestLedgerConfig:
    """Read *path* and return a :class:`QuestLedgerConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ConfigError
        If a value is present but malformed.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    if raw is not None and not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a YAML mapping")
    return parse_config(raw)
