from .records import StoreRecord
from .entities import (
    EntityParseError,
    InventoryChange,
    Product,
    Sale,
    SaleItem,
    KNOWN_REASONS,
    REASON_ADJUSTMENT,
    REASON_DAMAGE,
    REASON_RETURN,
    REASON_SALE,
    STOCK_APPLIED,
    STOCK_PENDING,
    sale_line_change_id,
)

__all__ = [
    'StoreRecord',
    'EntityParseError', 'InventoryChange', 'Product', 'Sale', 'SaleItem',
    'KNOWN_REASONS', 'REASON_ADJUSTMENT', 'REASON_DAMAGE', 'REASON_RETURN', 'REASON_SALE',
    'STOCK_APPLIED', 'STOCK_PENDING', 'sale_line_change_id',
]
