"""Configuration model: immutable data containers describing registered providers."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from panelfs._types import Options

# Types whose can_handle accepts any local-looking path.
_CATCH_ALL_TYPES = frozenset({"local"})


@dataclasses.dataclass(frozen=True)
class ProviderConfig:
    """Describes one provider instance.

    :param type: Provider type identifier (e.g. ``"local"``, ``"sftp"``).
    :param options: Provider-specific constructor keyword arguments.
    """

    type: str
    options: Options = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class RegistryConfig:
    """Top-level configuration container.

    :param providers: Providers in dispatch order. The first provider whose
        ``can_handle`` accepts a path wins, so the catch-all ``local``
        provider must come last.
    """

    providers: list[ProviderConfig] = dataclasses.field(default_factory=list)

    def validate(self) -> None:
        """Validate provider ordering.

        :raises ValueError: If a catch-all provider shadows a later provider.
        """
        for index, cfg in enumerate(self.providers):
            if cfg.type in _CATCH_ALL_TYPES and index != len(self.providers) - 1:
                shadowed = [c.type for c in self.providers[index + 1 :]]
                raise ValueError(
                    f"Provider '{cfg.type}' accepts every local path and must be registered last. "
                    f"It would shadow: {shadowed}"
                )

    @classmethod
    def default(cls) -> RegistryConfig:
        """Archive and network providers first, local filesystem last."""
        return cls(
            providers=[
                ProviderConfig(type="tar"),
                ProviderConfig(type="zip"),
                ProviderConfig(type="ftp"),
                ProviderConfig(type="sftp"),
                ProviderConfig(type="local"),
            ]
        )

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> RegistryConfig:
        """Construct from a plain dict (e.g. parsed TOML/JSON).

        :param data: Dict with a ``providers`` list of ``{"type": ..., "options": {...}}``.
        """
        raw_providers = data.get("providers", [])
        if not isinstance(raw_providers, list):
            msg = "Expected 'providers' to be a list"
            raise TypeError(msg)

        providers: list[ProviderConfig] = []
        for index, cfg in enumerate(raw_providers):
            if not isinstance(cfg, dict):
                msg = f"Provider config #{index} must be a dict"
                raise TypeError(msg)
            options = cfg.get("options", {})
            if not isinstance(options, dict):
                msg = f"Options for provider #{index} must be a dict"
                raise TypeError(msg)
            providers.append(ProviderConfig(type=str(cfg["type"]), options=dict(options)))

        return cls(providers=providers)
