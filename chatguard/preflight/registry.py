"""
Check registry.

Holds the ordered, immutable list of preflight checks. Registration order
is execution order within a tier.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from chatguard.preflight.check import PreflightCheck

logger = logging.getLogger(__name__)

VALID_TIERS = (1, 2, 3, 4)


class CheckRegistry:
    """
    Ordered collection of preflight checks.

    Usage:
        registry = CheckRegistry(build_default_checks(store, mitigation))
        for check in registry.get_by_tier(1):
            ...
    """

    def __init__(self, checks: Optional[Iterable[PreflightCheck]] = None):
        self._checks: Optional[Tuple[PreflightCheck, ...]] = None
        if checks is not None:
            self.register(checks)

    def register(self, checks: Iterable[PreflightCheck]) -> None:
        """
        Register all checks at once.

        Raises:
            RuntimeError: If checks were already registered
            ValueError: On duplicate names or tiers outside 1-4
        """
        if self._checks is not None:
            raise RuntimeError("Checks are already registered")

        checks = tuple(checks)
        seen = set()
        for check in checks:
            if not check.name:
                raise ValueError(f"{check!r} has no name")
            if check.name in seen:
                raise ValueError(f"Duplicate check name: '{check.name}'")
            if check.tier not in VALID_TIERS:
                raise ValueError(
                    f"Check '{check.name}' has invalid tier {check.tier}. "
                    f"Expected one of {list(VALID_TIERS)}"
                )
            seen.add(check.name)

        self._checks = checks
        logger.debug(f"Registered {len(checks)} checks: {', '.join(c.name for c in checks)}")

    @property
    def checks(self) -> Tuple[PreflightCheck, ...]:
        return self._checks or ()

    def get_by_tier(self, tier: int) -> List[PreflightCheck]:
        return [c for c in self.checks if c.tier == tier]

    def get(self, name: str) -> Optional[PreflightCheck]:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def names(self) -> List[str]:
        return [c.name for c in self.checks]

    def validate_config(self, check_config: Dict[str, Dict[str, Any]]) -> None:
        """
        Validate a ``{check_name: {option: value}}`` mapping.

        Raises:
            ValueError: For an unknown check name
            pydantic.ValidationError: For unknown options or wrong types
        """
        for name, options in check_config.items():
            check = self.get(name)
            if check is None:
                raise ValueError(
                    f"Unknown check in config: '{name}'. "
                    f"Available checks: {', '.join(self.names())}"
                )
            if options and not check.configurable:
                raise ValueError(f"Check '{name}' is not configurable")
            check.build_config(options)

    def __iter__(self) -> Iterator[PreflightCheck]:
        return iter(self.checks)

    def __len__(self) -> int:
        return len(self.checks)

    def __contains__(self, name: object) -> bool:
        return any(c.name == name for c in self.checks)
