from __future__ import annotations

from typing import Mapping

from .models import ManagedLink, ReconciliationPlan, UnitDescriptor


def compute_plan(
    desired: Mapping[str, UnitDescriptor],
    actual: Mapping[str, ManagedLink],
    registered: set[str] | None = None,
) -> ReconciliationPlan:
    """Diff desired descriptors against managed links.

    Matching is by exact name. Only the link target path is compared, never
    the descriptor content: editing a descriptor in place produces no action.

    A link whose target file is gone is removed unless its name is still
    desired, in which case it is relinked instead (the three sets stay
    disjoint).

    ``registered`` switches on strict ownership: links not listed there are
    reported as ``unowned`` and are neither relinked nor removed.
    """
    to_create: set[str] = set()
    to_update: set[str] = set()
    to_remove: set[str] = set()
    unowned: set[str] = set()

    def owned(name: str) -> bool:
        if registered is None or name in registered:
            return True
        unowned.add(name)
        return False

    for name, desc in desired.items():
        link = actual.get(name)
        if link is None:
            to_create.add(name)
        elif link.resolved_target != desc.source_path:
            if owned(name):
                to_update.add(name)

    for name, link in actual.items():
        if name in desired:
            continue
        if not link.target_exists() and owned(name):
            to_remove.add(name)

    return ReconciliationPlan(
        to_create=frozenset(to_create),
        to_update=frozenset(to_update),
        to_remove=frozenset(to_remove),
        unowned=frozenset(unowned),
    )
