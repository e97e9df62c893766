from .catalog import Warehouse, Product, User
from .inventory import (
    InventoryTransaction, InventoryItem, LedgerEntryType, INBOUND_ENTRY_TYPES, OUTBOUND_ENTRY_TYPES,
)
from .transfers import (
    WarehouseTransfer, WarehouseTransferItem, WarehouseTransferLog,
    TransferStatus, TransferItemStatus, TRANSFER_TRANSITIONS, RESERVING_STATUSES,
    can_transition, require_transition,
)
from .documents import DocumentSequence, ActivityLog

__all__ = [
    'Warehouse', 'Product', 'User',
    'InventoryTransaction', 'InventoryItem', 'LedgerEntryType', 'INBOUND_ENTRY_TYPES', 'OUTBOUND_ENTRY_TYPES',
    'WarehouseTransfer', 'WarehouseTransferItem', 'WarehouseTransferLog',
    'TransferStatus', 'TransferItemStatus', 'TRANSFER_TRANSITIONS', 'RESERVING_STATUSES',
    'can_transition', 'require_transition',
    'DocumentSequence', 'ActivityLog',
]
