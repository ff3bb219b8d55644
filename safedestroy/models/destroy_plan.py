"""Static deletion order for the resource kinds in play."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .resource import ResourceKind

# Safe deletion sequence; a kind is deleted only after every kind before it
DEFAULT_KIND_ORDER: Tuple[ResourceKind, ...] = (
    ResourceKind.LOAD_BALANCER,
    ResourceKind.TARGET_GROUP,
    ResourceKind.NODE_GROUP,
    ResourceKind.MANAGED_CLUSTER,
    ResourceKind.INSTANCE,
    ResourceKind.NAT_GATEWAY,
    ResourceKind.VPC_ENDPOINT,
    ResourceKind.INTERNET_GATEWAY,
    ResourceKind.ROUTE_TABLE,
    ResourceKind.INTERFACE,
    ResourceKind.SECURITY_GROUP,
    ResourceKind.SUBNET,
    ResourceKind.NETWORK,
    ResourceKind.OBJECT_STORE,
    ResourceKind.LOCK_TABLE,
)


@dataclass(frozen=True)
class DestroyPlan:
    """Ordered list of resource kinds representing a safe deletion sequence.

    Derived once per run from the kinds present; never recomputed.
    """

    kinds: Tuple[ResourceKind, ...]

    @classmethod
    def for_kinds(cls, present: Iterable[ResourceKind]) -> "DestroyPlan":
        """Build the plan restricted to the kinds actually present.

        Args:
            present: Kinds found in the inventory or manifest

        Returns:
            DestroyPlan preserving DEFAULT_KIND_ORDER
        """
        present_set = set(present)
        return cls(kinds=tuple(k for k in DEFAULT_KIND_ORDER if k in present_set))

    def position(self, kind: ResourceKind) -> int:
        return self.kinds.index(kind)

    def __iter__(self):
        return iter(self.kinds)

    def __len__(self) -> int:
        return len(self.kinds)

    def describe(self) -> List[str]:
        return [k.value for k in self.kinds]
