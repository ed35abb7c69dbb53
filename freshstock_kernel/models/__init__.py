"""SQLAlchemy ORM models for freshstock."""

from freshstock_kernel.models.batch import ProductBatchModel
from freshstock_kernel.models.expiry import ExpiryMarkerModel, ExpirySweepRunModel
from freshstock_kernel.models.mutation import InventoryMutationModel
from freshstock_kernel.models.transfer import (
    InventoryTransferModel,
    TransferStatusChangeModel,
)

__all__ = [
    "ProductBatchModel",
    "InventoryMutationModel",
    "InventoryTransferModel",
    "TransferStatusChangeModel",
    "ExpiryMarkerModel",
    "ExpirySweepRunModel",
]
