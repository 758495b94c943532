from .allocator import Allocation, AllocationStrategy, BatchAllocator
from .expiry import ExpiryStatus, classify_expiry, days_until_expiry

__all__ = [
    "Allocation",
    "AllocationStrategy",
    "BatchAllocator",
    "ExpiryStatus",
    "classify_expiry",
    "days_until_expiry",
]
