"""
Plan catalog - Single Source of Truth for plan key -> Stripe price id
Usage: from backend.billing_plans import PlanCatalog

Price ids come from the environment at process start and never change afterwards.
"""
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional


# Client-facing plan keys (closed set)
PLAN_KEYS = ("initiate", "warrior", "guardian")

# Environment variable holding the Stripe price id of each plan
PLAN_PRICE_ENV = {
    "initiate": "PRICE_ID_INITIATE",
    "warrior": "PRICE_ID_WARRIOR",
    "guardian": "PRICE_ID_GUARDIAN",
}


@dataclass(frozen=True)
class PlanCatalog:
    """Read-only mapping plan key -> Stripe price id (None when not configured)"""
    prices: Mapping[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze a private copy so callers can't mutate the catalog later
        object.__setattr__(self, "prices", MappingProxyType(dict(self.prices)))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PlanCatalog":
        env = os.environ if environ is None else environ
        return cls({plan: env.get(var) for plan, var in PLAN_PRICE_ENV.items()})

    def resolve(self, plan: str) -> Optional[str]:
        """
        Map a plan key to its Stripe price id.

        Exact string match (no case folding, no trimming).

        Returns:
            price id for a known, configured plan
            None for unknown keys and for keys mapped to an empty price id
        """
        price_id = self.prices.get(plan)
        if not price_id:
            return None
        return price_id

    def configured_plans(self) -> Dict[str, bool]:
        """Presence flag per plan key (for diagnostics, never the price id itself)"""
        return {plan: bool(self.prices.get(plan)) for plan in PLAN_KEYS}
