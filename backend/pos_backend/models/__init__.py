from .auth import User, SessionToken
from .inventory import Category, Product, InventoryLog
from .sales import Sale, SaleItem, SaleNumberSequence
from .logs import SystemLog

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product', 'InventoryLog',
    'Sale', 'SaleItem', 'SaleNumberSequence',
    'SystemLog',
]
