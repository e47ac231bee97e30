from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import actions.accounts as accounts
from db.models import DEFAULT_DIVISION, Division, Identity


@dataclass
class AdminState:
    """
    Centralized console state shared by screens.

    Fields:
      - identity: the signed-in staff member, None before login
      - name: display name for the sidebar
      - division: storefront division the screens are scoped to; persisted per admin
    """

    identity: Optional[Identity] = None
    name: str = ""
    division: Division = DEFAULT_DIVISION

    @property
    def logged_in(self) -> bool:
        return self.identity is not None

    async def load_division(self) -> Division:
        """Restore the admin's last division; falls back to the default."""
        if self.identity is None:
            self.division = DEFAULT_DIVISION
        else:
            self.division = await accounts.get_admin_division(self.identity)
        return self.division

    async def switch_division(self, division: Division) -> bool:
        """Persist and apply a new division. Returns False if it could not be saved."""
        result = await accounts.set_admin_division(self.identity, Division(division).value)
        if result.success:
            self.division = result.data
        return result.success

    def clear(self) -> None:
        self.identity = None
        self.name = ""
        self.division = DEFAULT_DIVISION
