"""
Hero Operator - matches same-identity elements across adjacent scenes.

The manager is an arena keyed by identity. It is populated in one pass over
the fully known scene list and must be cleared (or rebuilt) between
independent compositions. Writes are not synchronized; a single walk owns
registration, and reads are safe once that walk has finished.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from framegraph.exceptions import UnresolvedReferenceError
from framegraph.models.timeline_models import HeroRegistration, Rect

logger = logging.getLogger(__name__)


class HeroTransitionData(BaseModel):
    """Interpolated geometry for one frame of a hero transition."""

    model_config = ConfigDict(frozen=True)

    identity_key: str
    from_scene: int
    to_scene: int
    progress: float = Field(ge=0.0, le=1.0)
    bounds: Rect
    rotation: float
    scale: float


class HeroTransitionManager:
    def __init__(self) -> None:
        self._registrations: dict[str, list[HeroRegistration]] = {}

    @classmethod
    def from_registrations(
        cls, registrations: Iterable[HeroRegistration]
    ) -> HeroTransitionManager:
        manager = cls()
        for registration in registrations:
            manager.register(registration)
        return manager

    def register(self, registration: HeroRegistration) -> None:
        """Add a registration, replacing any at the same scene index."""
        entries = self._registrations.setdefault(registration.identity_key, [])
        indices = [entry.scene_index for entry in entries]
        position = bisect.bisect_left(indices, registration.scene_index)
        if position < len(entries) and entries[position].scene_index == registration.scene_index:
            logger.debug(
                f"Replacing hero '{registration.identity_key}' in scene {registration.scene_index}"
            )
            entries[position] = registration
        else:
            entries.insert(position, registration)

    def unregister(self, identity_key: str, scene_index: int) -> bool:
        entries = self._registrations.get(identity_key)
        if not entries:
            return False
        remaining = [entry for entry in entries if entry.scene_index != scene_index]
        if len(remaining) == len(entries):
            return False
        if remaining:
            self._registrations[identity_key] = remaining
        else:
            del self._registrations[identity_key]
        return True

    def clear(self) -> None:
        self._registrations.clear()

    def keys(self) -> list[str]:
        return sorted(self._registrations)

    def registrations(self, identity_key: str) -> list[HeroRegistration]:
        return list(self._registrations.get(identity_key, []))

    def _find(self, identity_key: str, scene_index: int) -> HeroRegistration | None:
        for entry in self._registrations.get(identity_key, []):
            if entry.scene_index == scene_index:
                return entry
        return None

    def has_hero_transition(self, identity_key: str, scene_index: int) -> bool:
        entries = self._registrations.get(identity_key, [])
        if len(entries) < 2:
            return False
        return any(
            entry.scene_index in (scene_index - 1, scene_index + 1)
            for entry in entries
        )

    def transition_data(
        self,
        identity_key: str,
        from_scene: int,
        to_scene: int,
        progress: float,
    ) -> HeroTransitionData | None:
        """
        Interpolate bounds, rotation and scale between two registrations.

        Returns None when fewer than two registrations exist for the key or
        either endpoint is missing; callers decide whether that is an error.
        """
        if len(self._registrations.get(identity_key, [])) < 2:
            return None
        source = self._find(identity_key, from_scene)
        target = self._find(identity_key, to_scene)
        if source is None or target is None:
            return None

        t = max(0.0, min(1.0, progress))
        return HeroTransitionData(
            identity_key=identity_key,
            from_scene=from_scene,
            to_scene=to_scene,
            progress=t,
            bounds=source.bounds.lerp(target.bounds, t),
            rotation=source.rotation + (target.rotation - source.rotation) * t,
            scale=source.scale + (target.scale - source.scale) * t,
        )

    def require_transition_data(
        self,
        identity_key: str,
        from_scene: int,
        to_scene: int,
        progress: float,
    ) -> HeroTransitionData:
        data = self.transition_data(identity_key, from_scene, to_scene, progress)
        if data is None:
            raise UnresolvedReferenceError(
                "hero",
                identity_key,
                f"No hero registrations for '{identity_key}' between scenes "
                f"{from_scene} and {to_scene}",
            )
        return data
