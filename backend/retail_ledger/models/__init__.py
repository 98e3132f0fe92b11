from .catalog import Store, Item
from .inventory import StockRecord, StockMovement
from .sales import PaymentMethod, Sale, SaleLine

__all__ = [
    'Store', 'Item',
    'StockRecord', 'StockMovement',
    'PaymentMethod', 'Sale', 'SaleLine',
]
