from .tenancy import Business, BusinessSettings, Store
from .auth import User, SessionToken
from .customers import Customer
from .catalog import Treatment, CatalogItem, ItemTreatmentPrice
from .orders import Order, OrderItem, OrderStatusHistory, OrderPayment
from .inventory import InventoryItem, InventoryRestockLog
from .expenses import Expense
from .notifications import Notification
from .billing import Subscription, SubscriptionPayment, Invoice

__all__ = [
    'Business', 'BusinessSettings', 'Store',
    'User', 'SessionToken',
    'Customer',
    'Treatment', 'CatalogItem', 'ItemTreatmentPrice',
    'Order', 'OrderItem', 'OrderStatusHistory', 'OrderPayment',
    'InventoryItem', 'InventoryRestockLog',
    'Expense',
    'Notification',
    'Subscription', 'SubscriptionPayment', 'Invoice',
]
