from .controller import SaleDetail, SalesController

__all__ = ["SaleDetail", "SalesController"]
