from .tenancy import Store
from .auth import User, SessionToken
from .customers import Customer
from .inventory import Product, Inventory, StockMovement
from .sales import Sale, SaleItem
from .documents import DocumentSequence, ProductReturn, ReturnItem
from .licensing import License, LicenseActivation, LicenseTemplate

__all__ = [
    'Store',
    'User', 'SessionToken',
    'Customer',
    'Product', 'Inventory', 'StockMovement',
    'Sale', 'SaleItem',
    'DocumentSequence', 'ProductReturn', 'ReturnItem',
    'License', 'LicenseActivation', 'LicenseTemplate',
]
