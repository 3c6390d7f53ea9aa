"""Model catalog: human-facing model names -> upstream model identifiers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

logger = logging.getLogger(__name__)


class ModelCatalog:
    """Immutable selector -> model id mapping with a default fallback.

    Resolution order:
      1. exact selector match
      2. case-insensitive, whitespace-trimmed match
      3. the selector already is one of the configured upstream ids
      4. the default id
    """

    def __init__(self, models: Mapping[str, str], default_model_id: str):
        if not default_model_id:
            raise ValueError("default_model_id must not be empty")
        self._models = MappingProxyType(dict(models))
        self._folded = MappingProxyType({name.strip().casefold(): model_id for name, model_id in models.items()})
        self._ids = frozenset(self._models.values())
        self.default_model_id = default_model_id

    @property
    def models(self) -> Mapping[str, str]:
        return self._models

    def resolve(self, selector: str | None) -> str:
        if not selector:
            return self.default_model_id

        if selector in self._models:
            return self._models[selector]

        folded = selector.strip().casefold()
        if folded in self._folded:
            return self._folded[folded]

        if selector in self._ids:
            return selector

        logger.debug("Unknown model selector %r, using default %s", selector, self.default_model_id)
        return self.default_model_id

    def __contains__(self, selector: object) -> bool:
        return isinstance(selector, str) and (selector in self._models or selector in self._ids)

    def __len__(self) -> int:
        return len(self._models)
