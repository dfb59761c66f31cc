"""OrphanContainerGC - remove game containers with no session record.

Strict: a container is removed only when ALL of these hold:
1. Its name starts with the configured session container prefix
2. It carries every gamedock label
3. gamedock.managed is "true"
4. gamedock.instance_id is this instance's id
5. No session record exists for its gamedock.session_id

Anything else is skipped. Disabled by default.
"""

from __future__ import annotations

import structlog

from gamedock.drivers.base import EngineClient, RuntimeInstance
from gamedock.managers.session.session import (
    GAME_LABEL,
    INSTANCE_LABEL,
    MANAGED_LABEL,
    SESSION_LABEL,
)
from gamedock.services.gc.base import GCResult, GCTask
from gamedock.stores.sessions import SessionStore

logger = structlog.get_logger()

REQUIRED_LABELS = [SESSION_LABEL, GAME_LABEL, INSTANCE_LABEL, MANAGED_LABEL]


class OrphanContainerGC(GCTask):
    """Removes labelled game containers whose session is unknown."""

    def __init__(
        self,
        engine: EngineClient,
        store: SessionStore,
        *,
        instance_id: str,
        name_prefix: str = "gamedock-session-",
    ) -> None:
        self._engine = engine
        self._store = store
        self._instance_id = instance_id
        self._name_prefix = name_prefix
        self._log = logger.bind(gc_task="orphan_container")

    @property
    def name(self) -> str:
        return "orphan_container"

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)
        instances = await self._engine.list_managed(
            {MANAGED_LABEL: "true", INSTANCE_LABEL: self._instance_id}
        )
        self._log.info("gc.orphan_container.discovered", count=len(instances))

        for instance in instances:
            try:
                if await self._is_orphan(instance):
                    self._log.info(
                        "gc.orphan_container.removing",
                        container_id=instance.id,
                        container_name=instance.name,
                        session_id=instance.labels.get(SESSION_LABEL),
                    )
                    await self._engine.remove(instance.id)
                    result.cleaned_count += 1
                else:
                    result.skipped_count += 1
            except Exception as e:
                self._log.exception("gc.orphan_container.item_error", container_id=instance.id, error=str(e))
                result.add_error(f"container {instance.id}: {e}")

        return result

    async def _is_orphan(self, instance: RuntimeInstance) -> bool:
        if not instance.name.startswith(self._name_prefix):
            self._log.debug("gc.orphan_container.skip.name_prefix", container_name=instance.name)
            return False

        missing = [label for label in REQUIRED_LABELS if label not in instance.labels]
        if missing:
            self._log.debug("gc.orphan_container.skip.missing_labels", container_id=instance.id, missing=missing)
            return False

        if instance.labels[MANAGED_LABEL] != "true":
            return False

        if instance.labels[INSTANCE_LABEL] != self._instance_id:
            self._log.warning(
                "gc.orphan_container.skip.instance_mismatch",
                container_id=instance.id,
                container_instance_id=instance.labels[INSTANCE_LABEL],
            )
            return False

        session_id = instance.labels[SESSION_LABEL]
        if await self._store.get(session_id) is not None:
            return False
        return True
