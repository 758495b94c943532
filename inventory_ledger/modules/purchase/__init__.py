from .controller import PurchaseController, PurchaseDetail

__all__ = ["PurchaseController", "PurchaseDetail"]
