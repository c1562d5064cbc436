import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from storefront.cart import CartStore

logger = logging.getLogger(__name__)


class SwitchOutcome(str, Enum):
    switched = "switched"
    unchanged = "unchanged"
    confirmation_required = "confirmation_required"


@dataclass
class BranchSwitchResult:
    outcome: SwitchOutcome
    branch_id: Optional[str]
    cart_cleared: bool = False

    @property
    def needs_confirmation(self) -> bool:
        return self.outcome is SwitchOutcome.confirmation_required


def request_branch_switch(store: CartStore, candidate: str, confirm: bool = False) -> BranchSwitchResult:
    if store.selected_branch_id == candidate:
        store.adopt_branch(candidate)
        return BranchSwitchResult(SwitchOutcome.unchanged, candidate)

    current = store.selected_branch_id or store.branch_id()
    cleared = False
    if len(store) > 0 and current is not None and current != candidate:
        if not confirm:
            return BranchSwitchResult(SwitchOutcome.confirmation_required, store.selected_branch_id)
        logger.info("branch change %s -> %s clears %d cart lines", current, candidate, len(store))
        store.clear()
        cleared = True

    store.set_branch(candidate)
    # lines saved before any branch was chosen belong to the first one picked
    store.adopt_branch(candidate)
    return BranchSwitchResult(SwitchOutcome.switched, candidate, cart_cleared=cleared)
