from .catalog import User, Product, WarehouseStock
from .stock import StockBatch, BatchMovement
from .pricing import DirectPricing, PriceTierUpdate, PriceHistoryEntry
from .warehouse import WarehouseActivity

__all__ = [
    'User', 'Product', 'WarehouseStock',
    'StockBatch', 'BatchMovement',
    'DirectPricing', 'PriceTierUpdate', 'PriceHistoryEntry',
    'WarehouseActivity',
]
