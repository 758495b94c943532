from .controller import CustomerSummary, PartiesController, VendorSummary

__all__ = ["CustomerSummary", "PartiesController", "VendorSummary"]
