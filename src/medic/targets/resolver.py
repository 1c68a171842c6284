"""Platform-aware target resolution with a per-run cache."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from medic.shared.enums import Platform
from medic.shared.models import TargetHandle
from medic.targets.interfaces import TargetChooser

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str | None]


class TargetCache:
    """Resolved handles keyed by ``(platform, filter)``; append-only."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, TargetHandle] = {}

    def get(self, platform: str, target: str | None) -> TargetHandle | None:
        return self._entries.get((platform, target))

    def put(self, platform: str, target: str | None, handle: TargetHandle) -> None:
        self._entries.setdefault((platform, target), handle)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class TargetResolver:
    """Resolves a ``TargetHandle`` for a platform, reusing earlier results.

    Platforms without a chooser (browser, electron, windows) run directly
    against the host or an attached device and get an empty handle.
    """

    def __init__(
        self,
        choosers: Mapping[Platform, TargetChooser],
        *,
        cache: TargetCache | None = None,
    ) -> None:
        self._choosers = dict(choosers)
        self.cache = cache if cache is not None else TargetCache()

    async def resolve(self, platform: str, target: str | None = None) -> TargetHandle | None:
        """Return the handle for ``platform``/``target``, or None if none could be booted.

        Raises:
            TargetResolutionError: If discovery ran but nothing matched.
        """
        platform_id = platform.split("@")[0].strip().lower()
        cached = self.cache.get(platform_id, target)
        if cached is not None:
            logger.info("previous search for %s target %r found, reusing it", platform_id, target)
            return cached

        logger.info("searching for a(n) %s target: %s", platform_id, target or "<any>")
        parsed = Platform.parse(platform_id)
        chooser = self._choosers.get(parsed) if parsed is not None else None
        if chooser is None:
            handle: TargetHandle | None = TargetHandle.empty()
        else:
            handle = await chooser.choose(target)

        if handle is not None:
            self.cache.put(platform_id, target, handle)
        return handle
