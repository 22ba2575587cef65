"""Entity registry: canonical people, places, organizations and projects."""

import builtins

import structlog

from task_graph.errors import ValidationError
from task_graph.links import LinkIndex
from task_graph.models import SUGGESTED_ENTITY_TYPES, Entity, is_blank
from task_graph.persistence import DELETE, ENTITY, INSERT, UPDATE, Change
from task_graph.state import EngineState

logger = structlog.get_logger()


class EntityRegistry:
    """Registry of entities keyed by a stable external id."""

    def __init__(self, state: EngineState, links: LinkIndex) -> None:
        self._state = state
        self._links = links

    def register(
        self,
        entity_id: str,
        name: str,
        type: str,
        aliases: builtins.list[str] | None = None,
        note: str | None = None,
    ) -> Entity:
        """Register a new entity.

        Args:
            entity_id: Stable external key
            name: Display name
            type: Open string; see SUGGESTED_ENTITY_TYPES
            aliases: Alternative names, kept in order
            note: Free-form note

        Raises:
            ValidationError: on a blank field or an id that is already registered
        """
        with self._state.mutation():
            if not is_blank(entity_id) and entity_id in self._state.entities:
                logger.warning("Duplicate entity id", entity_id=entity_id)
                raise ValidationError(f"Entity {entity_id!r} already exists")
            now = self._state.clock.now()
            entity = Entity(
                id=entity_id,
                name=name,
                type=type,
                aliases=builtins.list(aliases or []),
                note=note,
                created_at=now,
                updated_at=now,
            )
            entity.validate()
            if entity.type not in SUGGESTED_ENTITY_TYPES:
                logger.debug("Registering entity with custom type", entity_id=entity_id, type=type)

            self._state.entities[entity.id] = entity
            self._state.record(Change(ENTITY, INSERT, entity.to_dict()))
            logger.info("Entity registered", entity_id=entity.id, name=entity.name, type=entity.type)
            return entity.copy()

    def get(self, entity_id: str) -> Entity | None:
        with self._state.reading():
            entity = self._state.entities.get(entity_id)
            logger.debug("Entity lookup", entity_id=entity_id, found=entity is not None)
            return entity.copy() if entity is not None else None

    def update(
        self,
        entity_id: str,
        name: str | None = None,
        type: str | None = None,
        aliases: builtins.list[str] | None = None,
        note: str | None = None,
    ) -> Entity:
        """Edit entity fields; only the given ones change. Always bumps updated_at."""
        with self._state.mutation():
            current = self._state.require_entity(entity_id)
            candidate = current.copy()
            if name is not None:
                candidate.name = name
            if type is not None:
                candidate.type = type
            if aliases is not None:
                candidate.aliases = builtins.list(aliases)
            if note is not None:
                candidate.note = note
            candidate.updated_at = self._state.clock.now()
            candidate.validate()

            self._state.entities[entity_id] = candidate
            self._state.record(Change(ENTITY, UPDATE, candidate.to_dict()))
            logger.info("Entity updated", entity_id=entity_id)
            return candidate.copy()

    def delete(self, entity_id: str) -> None:
        """Delete an entity after removing its task links."""
        with self._state.mutation():
            entity = self._state.require_entity(entity_id)
            self._links.detach_entity(entity_id)
            del self._state.entities[entity_id]
            self._state.record(Change(ENTITY, DELETE, entity.to_dict()))
            logger.info("Entity deleted", entity_id=entity_id)

    def list(self, type: str | None = None) -> builtins.list[Entity]:
        """List entities ordered by name, optionally of one type."""
        with self._state.reading():
            entities = [
                entity.copy() for entity in self._state.entities.values() if type is None or entity.type == type
            ]
            return sorted(entities, key=lambda e: (e.name.casefold(), e.id))
