from .catalog import Product
from .branches import Branch
from .inventory import InventoryItem, StockMovement, StockAudit, StockAuditItem
from .transfers import BranchTransfer, BranchTransferItem
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem, SupplierPriceHistory
from .documents import DocumentSequence
from .notifications import Notification

__all__ = [
    'Product', 'Branch',
    'InventoryItem', 'StockMovement', 'StockAudit', 'StockAuditItem',
    'BranchTransfer', 'BranchTransferItem',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem', 'SupplierPriceHistory',
    'DocumentSequence', 'Notification',
]
