"""Authorization predicates for deal transitions.

All checks run against the persisted deal, never against session state.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from wtb_deals.domain.deals import Deal


@dataclass(frozen=True)
class ApproverPolicy:
    """Who holds the approver capability."""

    role_ids: frozenset[str] = frozenset()
    user_ids: frozenset[str] = frozenset()

    def allows(self, actor_id: str, actor_roles: Iterable[str] = ()) -> bool:
        """Return true when the actor is an approver.

        An empty policy grants nobody the capability.
        """
        if actor_id in self.user_ids:
            return True
        return any(role in self.role_ids for role in actor_roles)


def is_claimant(deal: Deal, actor_id: str) -> bool:
    """Return true when the actor is the recorded claimant."""
    claimant = (deal.claimed_seller_discord_id or "").strip()
    return bool(claimant) and claimant == actor_id


def is_confirmed_claimant(deal: Deal, actor_id: str) -> bool:
    """Return true when the actor is the claimant and confirmed their identity."""
    return is_claimant(deal, actor_id) and deal.claimed_seller_confirmed


def is_requester(deal: Deal, actor_id: str) -> bool:
    """Return true when the actor is the counterparty that listed the want."""
    buyer = (deal.buyer_discord_id or "").strip()
    return bool(buyer) and buyer == actor_id


def can_approve(
    policy: ApproverPolicy, actor_id: str, actor_roles: Iterable[str] = ()
) -> bool:
    """Return true when the actor may approve deals."""
    return policy.allows(actor_id, actor_roles)


def can_cancel(
    deal: Deal,
    policy: ApproverPolicy,
    actor_id: str,
    actor_roles: Iterable[str] = (),
) -> bool:
    """Return true when the actor may cancel an active claim."""
    return is_claimant(deal, actor_id) or policy.allows(actor_id, actor_roles)
