"""Relation reconciliation against the repository."""

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from app.models.schemas import Relation
from app.utils.repository import RepositoryClient


@dataclass
class ReconcileResult:
    """Relations changed by one reconciliation."""

    added: list[str] = field(default_factory=list)
    removed: list[Relation] = field(default_factory=list)

    @property
    def changes(self) -> int:
        return len(self.added) + len(self.removed)


class RelationReconciler:
    """Converges an object's outbound relations of one predicate to a desired target set."""

    def __init__(self, client: RepositoryClient, comment: str):
        self.client = client
        self.comment = comment

    def reconcile(self, subject_pid: str, predicate: str, desired_targets: Iterable[str]) -> ReconcileResult:
        """
        Make the live ``predicate`` targets of ``subject_pid`` equal ``desired_targets``.

        Relations that are already correct are left alone, so running this
        again after a partial failure only issues the missing changes.

        Args:
            subject_pid: Object owning the relations
            predicate: Relation type to reconcile
            desired_targets: Target PIDs that should remain; order is irrelevant

        Returns:
            The additions and removals issued
        """
        desired = list(dict.fromkeys(desired_targets))
        result = ReconcileResult()
        kept: set[str] = set()

        for relation in self.client.list_object_relations(subject_pid, predicate):
            if relation.object_pid in desired and relation.object_pid not in kept:
                kept.add(relation.object_pid)
                continue
            self.client.remove_object_relation(relation, self.comment)
            result.removed.append(relation)

        for target in desired:
            if target not in kept:
                self.client.add_object_relation(subject_pid, predicate, target, self.comment)
                result.added.append(target)

        if result.changes:
            logger.debug(
                f"Reconciled {predicate} of {subject_pid}: "
                f"+{len(result.added)} -{len(result.removed)}"
            )
        return result
