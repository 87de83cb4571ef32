"""Provider Registry - static capability table and per-segment fallback chains."""

from typing import Any, Optional

from app.core.config import Settings
from app.models.schemas import ProviderCapability, Segment


class ProviderRegistry:
    """Capability table built from settings, in declaration order."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the registry.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self._capabilities: dict[str, ProviderCapability] = {}
        for entry in settings.generation_providers:
            capability = ProviderCapability(**entry)
            if capability.name in self._capabilities:
                raise ValueError(f"Duplicate provider name in table: {capability.name}")
            self._capabilities[capability.name] = capability

    @property
    def names(self) -> list[str]:
        return list(self._capabilities)

    def get(self, name: str) -> Optional[ProviderCapability]:
        return self._capabilities.get(name)

    def all(self) -> list[ProviderCapability]:
        return list(self._capabilities.values())

    def high_capacity(self) -> Optional[ProviderCapability]:
        """The designated fallback the segmenter may use for leftovers."""
        name = self.settings.high_capacity_provider
        return self._capabilities.get(name) if name else None

    def segment_candidates(self) -> list[ProviderCapability]:
        """Providers the segmenter may assign, declaration order preserved."""
        fallback = self.settings.high_capacity_provider
        allowed = self.settings.segment_providers
        if allowed is None:
            return [c for c in self._capabilities.values() if c.name != fallback]
        unknown = [name for name in allowed if name not in self._capabilities]
        if unknown:
            self.logger.warning(f"Ignoring unknown segment providers: {unknown}")
        return [c for c in self._capabilities.values() if c.name in allowed]

    def fallback_chain(self, segment: Segment) -> list[ProviderCapability]:
        """
        Ordered providers to try for one segment.

        Order: explicit per-second model order, the assigned provider, style
        preferences, then the general fallbacks. Duplicates and unknown names are
        dropped, and only providers supporting the segment's duration are kept
        (any provider qualifies for a remainder-corrected segment).
        """
        ordered = [
            *segment.overrides.model_order,
            segment.provider,
            *self.settings.style_preferences.get(segment.style.lower(), []),
            *self.settings.general_fallback_order,
        ]
        chain: list[ProviderCapability] = []
        seen: set[str] = set()
        for name in ordered:
            if name in seen:
                continue
            seen.add(name)
            capability = self._capabilities.get(name)
            if capability is None:
                continue
            if segment.corrected or capability.supports(segment.duration):
                chain.append(capability)
        return chain
