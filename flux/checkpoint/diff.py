"""
Field-level State diff.

diff(a, b) lists what changed going from a to b as (path, before, after)
entries. Paths are dotted: "environment.rails", "executions.<id>",
"stats.bundle.runs". The result is sorted, so it is deterministic, and
diff(b, a) reports the same paths with before/after swapped.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Tuple

from ..core.canonical import canonicalize
from ..core.state import State

ADDED = "added"
REMOVED = "removed"
CHANGED = "changed"

_MISSING = object()

_STAT_FIELDS = ("runs", "successes", "failures", "total_duration_ms", "last_run")


@dataclass(frozen=True)
class Change:
    """One changed path. before/after are None on the side where it is absent."""
    path: str
    before: Any
    after: Any
    kind: str

    def inverted(self) -> "Change":
        kind = {ADDED: REMOVED, REMOVED: ADDED}.get(self.kind, self.kind)
        return Change(path=self.path, before=self.after, after=self.before, kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "before": self.before, "after": self.after, "kind": self.kind}


def _compare_maps(prefix: str, a: Dict[str, Any], b: Dict[str, Any]) -> Iterator[Change]:
    for key in sorted(set(a) | set(b), key=str):
        before = a.get(key, _MISSING)
        after = b.get(key, _MISSING)
        if before is _MISSING:
            yield Change(f"{prefix}.{key}", None, after, ADDED)
        elif after is _MISSING:
            yield Change(f"{prefix}.{key}", before, None, REMOVED)
        elif before != after:
            yield Change(f"{prefix}.{key}", before, after, CHANGED)


def _execution_map(state: State) -> Dict[str, Any]:
    return {ex.id: canonicalize(ex.to_dict()) for ex in state.executions}


def _extension_map(state: State) -> Dict[str, Any]:
    out = {}
    for pos, record in enumerate(state.extensions):
        out[str(record.get("id") or pos)] = record
    return out


def _stats_changes(a: State, b: State) -> Iterator[Change]:
    for command in sorted(set(a.stats) | set(b.stats)):
        sa = a.stats.get(command)
        sb = b.stats.get(command)
        if sa is None or sb is None:
            yield from _compare_maps(
                "stats",
                {command: sa.to_dict()} if sa else {},
                {command: sb.to_dict()} if sb else {},
            )
            continue
        da = sa.to_dict()
        db = sb.to_dict()
        for name in _STAT_FIELDS:
            if da[name] != db[name]:
                yield Change(f"stats.{command}.{name}", da[name], db[name], CHANGED)


def diff(a: State, b: State) -> List[Change]:
    """
    Compare two States field by field.

    Covered: project metadata, environment keys, executions (added, removed,
    or changed e.g. incomplete -> success), per-command counts, extension
    records and the folded Signal count.

    Returns:
        Changes sorted by path; empty if nothing differs
    """
    changes: List[Change] = []
    changes.extend(_compare_maps("project", a.project, b.project))
    changes.extend(_compare_maps("environment", a.environment, b.environment))
    changes.extend(_compare_maps("executions", _execution_map(a), _execution_map(b)))
    changes.extend(_stats_changes(a, b))
    changes.extend(_compare_maps("extensions", _extension_map(a), _extension_map(b)))
    if a.signal_count != b.signal_count:
        changes.append(Change("signal_count", a.signal_count, b.signal_count, CHANGED))
    changes.sort(key=lambda c: c.path)
    return changes


def summarize(changes: List[Change]) -> Dict[str, Tuple[int, int, int]]:
    """Per top-level section: (added, removed, changed) counts."""
    out: Dict[str, List[int]] = {}
    for change in changes:
        section = change.path.split(".", 1)[0]
        counts = out.setdefault(section, [0, 0, 0])
        counts[(ADDED, REMOVED, CHANGED).index(change.kind)] += 1
    return {k: (v[0], v[1], v[2]) for k, v in out.items()}
