"""Tag reconciliation with ignore-key and ignore-prefix filtering.

Tags matching the ignore configuration are owned by someone else: they are
never added, never removed, never reported as drift, and are written back
verbatim whenever the full tag set has to be replaced.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class IgnoreTags:
    """Tag keys and key prefixes excluded from reconciliation.

    Attributes:
        keys: Exact tag keys to ignore.
        key_prefixes: Tag key prefixes to ignore.
    """

    keys: frozenset[str] = frozenset()
    key_prefixes: tuple[str, ...] = ()

    @classmethod
    def of(cls, keys: Iterable[str] = (), key_prefixes: Iterable[str] = ()) -> "IgnoreTags":
        return cls(keys=frozenset(keys), key_prefixes=tuple(key_prefixes))

    def ignores(self, key: str) -> bool:
        """Return whether a tag key is excluded from reconciliation."""
        return key in self.keys or any(key.startswith(p) for p in self.key_prefixes)

    def managed(self, tags: dict[str, str]) -> dict[str, str]:
        """Return only the tags that are not ignored."""
        return {k: v for k, v in tags.items() if not self.ignores(k)}

    def ignored(self, tags: dict[str, str]) -> dict[str, str]:
        """Return only the tags that are ignored."""
        return {k: v for k, v in tags.items() if self.ignores(k)}


@dataclass
class TagPlan:
    """Result of a tag reconciliation.

    Attributes:
        additions: Tags to add or overwrite.
        removals: Tag keys to remove.
        preserved: Ignored remote tags that must be kept as-is.
        desired: The managed desired tags.
    """

    additions: dict[str, str] = field(default_factory=dict)
    removals: list[str] = field(default_factory=list)
    preserved: dict[str, str] = field(default_factory=dict)
    desired: dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.additions or self.removals)

    def full_tag_set(self) -> dict[str, str]:
        """Return the complete tag set to write: managed tags plus preserved ones."""
        merged = dict(self.preserved)
        merged.update(self.desired)
        return merged


def reconcile_tags(
    desired: dict[str, str],
    observed: dict[str, str],
    ignore: IgnoreTags | None = None,
) -> TagPlan:
    """Compute tag additions and removals.

    Args:
        desired: Tags from configuration.
        observed: Tags currently on the remote object.
        ignore: Keys and prefixes to leave alone.

    Returns:
        A TagPlan. Ignored keys never appear in additions or removals.
    """
    ignore = ignore or IgnoreTags()
    managed_desired = ignore.managed(desired)
    effective_observed = ignore.managed(observed)

    additions = {
        k: v for k, v in managed_desired.items() if effective_observed.get(k) != v
    }
    removals = sorted(k for k in effective_observed if k not in managed_desired)

    return TagPlan(
        additions=additions,
        removals=removals,
        preserved=ignore.ignored(observed),
        desired=managed_desired,
    )
