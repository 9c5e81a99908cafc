"""Land parcels (RS numbers), plots and their area ledger."""

from estate_modules.land.models import AreaUnit, LandParcel, ParcelSummary, Plot, PlotStatus
from estate_modules.land.service import LandService

__all__ = ["AreaUnit", "LandParcel", "LandService", "ParcelSummary", "Plot", "PlotStatus"]
