"""
Variant addressing feature flag

USE_VARIANT_LABEL selects how product variants are addressed:
- off (default): legacy opaque variant ids
- on: human-readable variant labels, falling back to variant ids when a
  caller supplies no label

The flag is read at the start of every inventory operation and is never
cached, so flipping it takes effect on the next request without a restart.

Source precedence:
    1. Runtime override (admin endpoint, tests)
    2. USE_VARIANT_LABEL process environment variable
    3. settings.USE_VARIANT_LABEL (.env / defaults)

Usage:
    mode = variant_label_flag.addressing_mode()
    if variant_label_flag.is_label_mode_enabled():
        ...
"""
import enum
import logging
import os
from typing import Optional

from shopadmin.core.config import settings

logger = logging.getLogger(__name__)

FLAG_ENV_VAR = "USE_VARIANT_LABEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class AddressingMode(str, enum.Enum):
    """How a variant is looked up for one inventory operation."""
    LEGACY = "legacy"
    LABEL = "label"

    @classmethod
    def from_flag(cls, label_mode: bool) -> "AddressingMode":
        return cls.LABEL if label_mode else cls.LEGACY


def parse_flag_value(raw: Optional[str]) -> Optional[bool]:
    """Parse an env-style boolean. Returns None when the value is unrecognised."""
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return None


class FeatureFlagGate:
    """
    Resolves the active addressing mode at call time.

    No side effects and no failure mode: anything unset or unparsable means
    legacy addressing.
    """

    def __init__(self, env_var: str = FLAG_ENV_VAR, default: Optional[bool] = None):
        self.env_var = env_var
        self._default = default
        self._override: Optional[bool] = None

    @property
    def default(self) -> bool:
        if self._default is not None:
            return self._default
        return bool(getattr(settings, self.env_var, False))

    def is_label_mode_enabled(self) -> bool:
        if self._override is not None:
            return self._override

        raw = os.environ.get(self.env_var)
        parsed = parse_flag_value(raw)
        if parsed is not None:
            return parsed
        if raw is not None:
            logger.warning(f"[VARIANT_FLAG] Unrecognised {self.env_var}={raw!r}, using legacy addressing")
            return False

        return self.default

    def addressing_mode(self) -> AddressingMode:
        return AddressingMode.from_flag(self.is_label_mode_enabled())

    def set_override(self, enabled: bool) -> None:
        """Force the flag on or off for this process until cleared."""
        self._override = bool(enabled)
        logger.info(f"[VARIANT_FLAG] Override set: {self.env_var}={self._override}")

    def clear_override(self) -> None:
        self._override = None
        logger.info(f"[VARIANT_FLAG] Override cleared for {self.env_var}")

    @property
    def override(self) -> Optional[bool]:
        return self._override

    def source(self) -> str:
        """Where the current value comes from (for the admin endpoint)."""
        if self._override is not None:
            return "override"
        if parse_flag_value(os.environ.get(self.env_var)) is not None:
            return "environment"
        return "settings"


# Global gate used by the inventory service
variant_label_flag = FeatureFlagGate()
