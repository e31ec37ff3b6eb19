"""Menu catalog lookup used while pricing orders."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable

from sqlalchemy.orm import Session

from models import MenuItem


@dataclass(frozen=True)
class ResolvedItem:
    price: Decimal
    exists: bool = True


class MenuCatalog:
    def __init__(self, session: Session):
        self.session = session

    def resolve_items(self, ids: Iterable[int]) -> Dict[int, ResolvedItem]:
        """
        Current catalog price for each known id.

        Ids missing from the result do not exist in the catalog. Prices are
        read on every call, never cached.
        """
        wanted = set(ids)
        if not wanted:
            return {}

        rows = (
            self.session.query(MenuItem.id, MenuItem.price)
            .filter(MenuItem.id.in_(wanted))
            .all()
        )
        return {row.id: ResolvedItem(price=Decimal(row.price)) for row in rows}
