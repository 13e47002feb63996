from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from lending.models.rental import Rental
from lending.models.enums import RentalStatus
from lending.services.record_pipeline import RecordNotFound, RecordPipeline
from lending.services.registry import get_pipeline


class RentalException(Exception):
    pass


class RentalService:
    def __init__(self, db: Session, pipeline: Optional[RecordPipeline] = None):
        self.db = db
        self.pipeline = pipeline or get_pipeline()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def create(
        self,
        customer_name: str,
        item_ids: List[int],
        expected_on: date,
        rented_on: Optional[datetime] = None,
        deposit: int = 0,
        remark: Optional[str] = None,
        employee: Optional[str] = None,
    ) -> Rental:
        """
        Rent out one copy of every listed item. Raises AvailabilityConflict
        (nothing written) when any of them has no free copy.
        """
        if not item_ids:
            raise RentalException("A rental needs at least one item")
        rented_on = rented_on or self._now()
        if expected_on < rented_on.date():
            raise RentalException("Expected return date lies before the rental date")
        rental = Rental(
            customer_name=customer_name,
            rented_on=rented_on,
            expected_on=expected_on,
            deposit=deposit,
            remark=remark,
            employee=employee,
        )
        return self.pipeline.create(self.db, rental, item_ids=item_ids)

    def get(self, rental_id: int) -> Optional[Rental]:
        return self.db.get(Rental, rental_id)

    def list(self, active_only: bool = False, limit: int = 100) -> List[Rental]:
        qry = self.db.query(Rental)
        if active_only:
            qry = qry.filter(Rental.returned_on.is_(None))
        return qry.order_by(Rental.rented_on.desc()).limit(limit).all()

    def list_overdue(self, today: Optional[date] = None) -> List[Rental]:
        today = today or date.today()
        active = self.db.query(Rental).filter(Rental.returned_on.is_(None)).all()
        return [r for r in active if r.status_on(today) == RentalStatus.OVERDUE]

    def update(self, rental_id: int, changes: Dict) -> Rental:
        if "items" in changes and not changes["items"]:
            raise RentalException("A rental needs at least one item")
        return self.pipeline.update(self.db, Rental, rental_id, changes)

    def return_rental(
        self,
        rental_id: int,
        returned_on: Optional[datetime] = None,
        deposit_back: Optional[int] = None,
        employee_back: Optional[str] = None,
    ) -> Rental:
        changes = {"returned_on": returned_on or self._now()}
        if deposit_back is not None:
            changes["deposit_back"] = deposit_back
        if employee_back is not None:
            changes["employee_back"] = employee_back
        return self.update(rental_id, changes)

    def delete(self, rental_id: int) -> None:
        self.pipeline.delete(self.db, Rental, rental_id)

    def require(self, rental_id: int) -> Rental:
        r = self.get(rental_id)
        if not r:
            raise RecordNotFound(f"Rental {rental_id} not found")
        return r
