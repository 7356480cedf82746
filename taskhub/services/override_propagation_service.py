# File: taskhub/services/override_propagation_service.py
"""
Re-application of template edits to existing occurrence overrides.

Only the data fields an override can customise are touched here. Status,
assignee, start time and due date belong to the override and are left alone.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from taskhub.db.models import TaskOverride
from taskhub.repositories.task_override_repository import TaskOverrideRepository
from taskhub.schemas.task import OverrideData, PropagationResult
from taskhub.services.base_service import BaseService

logger = logging.getLogger(__name__)


class OverridePropagationService(BaseService[TaskOverride]):
    """
    Keeps live overrides consistent with their template after it is edited.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[TaskOverrideRepository] = None,
        event_bus=None,
        clock=None,
    ):
        super().__init__(
            session,
            repository_class=TaskOverrideRepository,
            repository=repository,
            event_bus=event_bus,
            clock=clock,
        )

    @staticmethod
    def apply_diff(
        current: OverrideData, diff: OverrideData
    ) -> Tuple[OverrideData, Dict[str, Any], List[str]]:
        """
        Compute the new patch for one override.

        For each propagated field:
        - tracked and in the diff: takes the diff value
        - tracked and not in the diff: dropped, so it inherits again
        - untracked and in the diff: added

        Returns:
            (new patch, fields set with their values, fields cleared)
        """
        data = current.to_patch()
        incoming = diff.to_patch()
        applied: Dict[str, Any] = {}
        cleared: List[str] = []

        for field in OverrideData.PROPAGATED_FIELDS:
            tracked = current.has(field)
            if field in incoming:
                if not tracked or data.get(field) != incoming[field]:
                    applied[field] = incoming[field]
                data[field] = incoming[field]
            elif tracked:
                data.pop(field, None)
                cleared.append(field)

        return OverrideData.model_validate(data), applied, cleared

    def on_template_updated(
        self, tenant_id: str, task_id: int, diff: OverrideData
    ) -> List[PropagationResult]:
        """
        Apply a template edit to every live override of the template.

        Each override is written in its own transaction. A failure is recorded
        on that override's result and does not stop the batch.

        Returns:
            One result per live override
        """
        results: List[PropagationResult] = []
        diff = OverrideData.from_values(
            {k: v for k, v in diff.to_patch().items() if k in OverrideData.PROPAGATED_FIELDS}
        )

        for override in self.repository.list_live(tenant_id, task_id):
            override_id, day = override.id, override.date
            result = PropagationResult(override_id=override_id, occurrence_date=day)
            try:
                current = OverrideData.from_stored(override.override_data)
                new_patch, applied, cleared = self.apply_diff(current, diff)
                if applied or cleared:
                    with self.transaction():
                        self.repository.update(
                            override, {"override_data": new_patch.to_patch()}
                        )
                result.applied = applied
                result.cleared = cleared
            except Exception as e:
                logger.error(
                    f"Failed to propagate changes of task {task_id} to override {override_id}: {e}",
                    exc_info=True,
                )
                result.error = str(e)
            results.append(result)

        changed = sum(1 for r in results if r.changed)
        logger.info(f"Propagated template changes of task {task_id} to {changed}/{len(results)} overrides")
        return results
