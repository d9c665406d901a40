# Models package
from app.models.fund import Fund
from app.models.allocation import FundAllocation
from app.models.capital_call import CapitalCall, Payment

__all__ = ["Fund", "FundAllocation", "CapitalCall", "Payment"]
