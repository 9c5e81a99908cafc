"""
Land ORM models (``estate_modules.land.orm``).

``LandParcelModel`` stores total/sold/allocated area; remaining area is
derived and never stored.  Both tables carry an optimistic ``version``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from estate_engines.land_area import AreaBalance
from estate_kernel.db.base import TrackedBase


class LandParcelModel(TrackedBase):
    __tablename__ = "estate_land_parcels"

    __table_args__ = (
        UniqueConstraint("parcel_code", name="uq_land_parcel_code"),
    )

    parcel_code: Mapped[str] = mapped_column(String(50))
    project_name: Mapped[str] = mapped_column(String(200))
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    unit: Mapped[str] = mapped_column(String(20))
    total_area: Mapped[Decimal]
    sold_area: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    allocated_area: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(default=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def balance(self) -> AreaBalance:
        return AreaBalance(
            parcel=self.parcel_code,
            total=self.total_area,
            sold=self.sold_area,
            allocated=self.allocated_area,
        )

    def apply_balance(self, balance: AreaBalance) -> None:
        self.total_area = balance.total
        self.sold_area = balance.sold
        self.allocated_area = balance.allocated

    def to_dto(self):
        from estate_modules.land.models import AreaUnit, LandParcel

        balance = self.balance()
        return LandParcel(
            id=self.id,
            parcel_code=self.parcel_code,
            project_name=self.project_name,
            location=self.location,
            unit=AreaUnit(self.unit),
            total_area=balance.total,
            sold_area=balance.sold,
            allocated_area=balance.allocated,
            remaining_area=balance.remaining,
            utilization_percent=balance.utilization_percent,
            availability=balance.availability,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<LandParcelModel {self.parcel_code} total={self.total_area}>"


class PlotModel(TrackedBase):
    __tablename__ = "estate_plots"

    __table_args__ = (
        UniqueConstraint("parcel_id", "plot_number", name="uq_plot_number_per_parcel"),
        Index("idx_plot_status", "status"),
    )

    parcel_id: Mapped[UUID] = mapped_column(ForeignKey("estate_land_parcels.id"))
    plot_number: Mapped[str] = mapped_column(String(50))
    area: Mapped[Decimal]
    status: Mapped[str] = mapped_column(String(20), default="Available")
    price: Mapped[Decimal | None] = mapped_column(nullable=True)
    client_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reservation_date: Mapped[date | None] = mapped_column(nullable=True)
    sale_date: Mapped[date | None] = mapped_column(nullable=True)
    is_deleted: Mapped[bool] = mapped_column(default=False)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from estate_modules.land.models import Plot, PlotStatus

        return Plot(
            id=self.id,
            parcel_id=self.parcel_id,
            plot_number=self.plot_number,
            area=self.area,
            status=PlotStatus(self.status),
            price=self.price,
            client_id=self.client_id,
            reservation_date=self.reservation_date,
            sale_date=self.sale_date,
        )

    def __repr__(self) -> str:
        return f"<PlotModel {self.plot_number} {self.status}>"
