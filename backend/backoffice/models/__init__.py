from .branches import Branch, User, BranchBalance, UserGoal
from .inventory import Product, Package, StockDelivery, StockBatch, StockWriteOff, ExpiryAlert
from .pricing import SaleablePrice, PriceAuthorization, PRICE_KIND_STANDARD, PRICE_KIND_SPECIAL
from .registers import CashRegisterShift, Deposit, Outflow
from .sales import Customer, Sale, SaleLine, SaleStockAllocation, Payment
from .communications import Notification, NotificationRecipient

__all__ = [
    'Branch', 'User', 'BranchBalance', 'UserGoal',
    'Product', 'Package', 'StockDelivery', 'StockBatch', 'StockWriteOff', 'ExpiryAlert',
    'SaleablePrice', 'PriceAuthorization', 'PRICE_KIND_STANDARD', 'PRICE_KIND_SPECIAL',
    'CashRegisterShift', 'Deposit', 'Outflow',
    'Customer', 'Sale', 'SaleLine', 'SaleStockAllocation', 'Payment',
    'Notification', 'NotificationRecipient',
]
