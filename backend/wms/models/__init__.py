from .documents import Document, DocumentLine, DocumentCounter
from .inventory import InventoryLot, StockReservation, ReservationAllocation
from .approvals import ApprovalTier
from .events import SystemEventRecord, EventDeliveryFailure

__all__ = [
    'Document', 'DocumentLine', 'DocumentCounter',
    'InventoryLot', 'StockReservation', 'ReservationAllocation',
    'ApprovalTier',
    'SystemEventRecord', 'EventDeliveryFailure',
]
