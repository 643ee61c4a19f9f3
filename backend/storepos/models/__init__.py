from .auth import User, SessionToken
from .catalog import Category, Product
from .inventory import InventoryStock, StockMovement, MovementType
from .sales import Sale, SaleItem, SaleStatus, ReceiptSequence

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product',
    'InventoryStock', 'StockMovement', 'MovementType',
    'Sale', 'SaleItem', 'SaleStatus', 'ReceiptSequence',
]
