from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .exceptions import InvalidScope
from .models import SCOPE_ALL_PARENTS, SCOPE_CLASS_PARENTS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scope:
    kind: str = SCOPE_ALL_PARENTS
    group_ids: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.kind not in (SCOPE_ALL_PARENTS, SCOPE_CLASS_PARENTS):
            raise InvalidScope(f"unknown scope: {self.kind!r}")
        ids = tuple(str(g) for g in (self.group_ids or ()) if str(g).strip())
        if self.kind == SCOPE_CLASS_PARENTS and not ids:
            raise InvalidScope("class_parents scope needs at least one class id")
        object.__setattr__(self, "group_ids", tuple(dict.fromkeys(ids)))

    @classmethod
    def all(cls) -> "Scope":
        return cls(SCOPE_ALL_PARENTS)

    @classmethod
    def classes(cls, class_ids: Iterable) -> "Scope":
        return cls(SCOPE_CLASS_PARENTS, tuple(class_ids or ()))

    @classmethod
    def from_broadcast(cls, broadcast) -> "Scope":
        return cls(broadcast.scope, tuple(broadcast.target_class_ids or ()))

    @property
    def is_scoped(self) -> bool:
        return self.kind == SCOPE_CLASS_PARENTS


@dataclass(frozen=True)
class Recipient:
    id: str
    destination_id: Optional[str]
    name: str = ""
    display_name: Optional[str] = None  # name on the provider side, e.g. LINE profile
    subject_id: Optional[str] = None
    subject_names: Tuple[str, ...] = ()


class RecipientStore:
    """Read side of the roster: who could receive a broadcast."""

    def list_addressable(self, tenant_id, scope: Scope) -> List[Recipient]:
        raise NotImplementedError


class RosterRecipientStore(RecipientStore):
    def list_addressable(self, tenant_id, scope: Scope) -> List[Recipient]:
        from roster.selectors import guardians_for_scope

        class_ids = scope.group_ids if scope.is_scoped else None
        rows = []
        for guardian in guardians_for_scope(tenant_id, class_ids):
            students = [link.student for link in guardian.linked_students]
            rows.append(Recipient(
                id=str(guardian.id),
                destination_id=guardian.line_user_id or None,
                name=guardian.full_name,
                display_name=guardian.line_display_name,
                subject_id=str(students[0].id) if students else None,
                subject_names=tuple(s.full_name for s in students),
            ))
        return rows


def resolve_recipients(tenant_id, scope: Scope, store: Optional[RecipientStore] = None) -> List[Recipient]:
    """
    Deduplicated, id-ordered audience for a scope. Candidates without a
    provider destination are dropped (and counted in the log).
    """
    store = store or RosterRecipientStore()
    seen = {}
    excluded = set()
    for r in store.list_addressable(tenant_id, scope):
        if not r.destination_id:
            excluded.add(str(r.id))
            continue
        seen.setdefault(str(r.id), r)

    if excluded:
        logger.info("broadcast audience for tenant %s: excluded %d recipients without a LINE destination", tenant_id, len(excluded))

    return [seen[k] for k in sorted(seen)]
