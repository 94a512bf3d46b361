from .catalog import Store, Product, TireProduct, BaleProduct
from .inventory import InventoryRecord, InventoryHistoryEntry
from .sales import Sale, SaleItem, VoidedSale
from .transfers import ProductTransfer
from .auth import User, SessionToken, RefreshToken

__all__ = [
    'Store', 'Product', 'TireProduct', 'BaleProduct',
    'InventoryRecord', 'InventoryHistoryEntry',
    'Sale', 'SaleItem', 'VoidedSale',
    'ProductTransfer',
    'User', 'SessionToken', 'RefreshToken',
]
