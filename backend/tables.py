from typing import List, Optional

from sqlalchemy.orm import Session

from errors import InvalidReference
from models import DiningTable


class TableRegistry:
    def __init__(self, session: Session):
        self.session = session

    def get_table(self, table_id: int) -> DiningTable:
        table = self.session.query(DiningTable).filter(DiningTable.id == table_id).first()
        if not table:
            raise InvalidReference(f"Table {table_id} does not exist", {"missing": [table_id]})
        return table

    @staticmethod
    def is_active(table: DiningTable) -> bool:
        return bool(table.is_active)

    def get_active_table(self, table_id: int) -> DiningTable:
        table = self.get_table(table_id)
        if not self.is_active(table):
            raise InvalidReference(f"Table {table_id} is not active", {"inactive": [table_id]})
        return table

    def active_tables(self, min_capacity: Optional[int] = None) -> List[DiningTable]:
        query = self.session.query(DiningTable).filter(DiningTable.is_active.is_(True))
        if min_capacity:
            query = query.filter(DiningTable.capacity >= min_capacity)
        return query.order_by(DiningTable.id).all()
