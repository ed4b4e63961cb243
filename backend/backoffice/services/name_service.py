# Overview: Display-name disambiguation among active documents of one kind.

"""
Unique Name Resolver

"Acme Corp" -> "Acme Corp 02" -> "Acme Corp 03" ... until the name is not
used by another ACTIVE document of the same kind. Soft-deleted documents do
not block a name; blank names are never disambiguated.

BEST EFFORT: the check is not atomic with the insert that follows it. Two
concurrent creates can both pick the same suffix before either commits; there
is deliberately no unique constraint on display_name (soft-deleted rows keep
their names, and blank names may repeat).
"""

from __future__ import annotations

from sqlalchemy import select

from ..kinds import get_kind
from ..models import Document
from .errors import NameResolutionExhausted


FIRST_SUFFIX = 2


def suffixed_name(base: str, suffix: int) -> str:
    """Suffixes 2-9 are zero-padded (" 02"); 10 and up use natural width (" 10")."""
    return f"{base} {suffix:02d}"


class UniqueNameResolver:
    def __init__(self, session, *, suffix_limit: int | None = None):
        self.session = session
        self.suffix_limit = suffix_limit

    def _is_taken(self, kind: str, name: str, exclude_id: int | None) -> bool:
        stmt = select(Document.id).where(
            Document.kind == kind,
            Document.display_name == name,
            Document.active_filter(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Document.id != exclude_id)
        return self.session.execute(stmt.limit(1)).first() is not None

    def resolve(self, kind: str, candidate: str, exclude_id: int | None = None) -> str:
        kind = get_kind(kind).name

        if not candidate or not candidate.strip():
            return candidate

        if not self._is_taken(kind, candidate, exclude_id):
            return candidate

        suffix = FIRST_SUFFIX
        while True:
            if self.suffix_limit is not None and suffix > self.suffix_limit:
                raise NameResolutionExhausted(
                    f"No free name for '{candidate}' up to suffix {self.suffix_limit}",
                    details={"kind": kind, "candidate": candidate},
                )
            name = suffixed_name(candidate, suffix)
            if not self._is_taken(kind, name, exclude_id):
                return name
            suffix += 1

    def check_conflicts(self, kind: str, names: list[str]) -> dict[str, bool]:
        """Map each name to whether an active document of `kind` already uses it."""
        kind = get_kind(kind).name
        wanted = {n for n in names if n and n.strip()}
        taken: set[str] = set()
        if wanted:
            taken = set(
                self.session.execute(
                    select(Document.display_name).where(
                        Document.kind == kind,
                        Document.display_name.in_(wanted),
                        Document.active_filter(),
                    )
                ).scalars()
            )
        return {name: name in taken for name in names}
