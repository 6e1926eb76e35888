from .catalog import Product
from .inventory import StockMovement
from .finance import Transaction
from .orders import Order, OrderLine, OrderLineAllocation
from .workshop import Batch

__all__ = [
    'Product',
    'StockMovement',
    'Transaction',
    'Order', 'OrderLine', 'OrderLineAllocation',
    'Batch',
]
