from .accounts import User, Store, Product
from .orders import Order, OrderItem
from .inventory import InventoryProduct, Supplier
from .customers import Customer
from .sales import Sale, SaleItem
from .finance import Payment, Wallet, WalletTransaction, Refund
from .loyalty import LoyaltyAccount, LoyaltyTransaction, LoyaltyReward, CustomerRedemption
from .reviews import VendorReview, VendorResponse, VendorPerformance
from .delivery import DeliveryZone, DriverLocation, DriverPerformance, DeliveryRoute
from .communications import Conversation, ChatMessage, SupportTicket, Notification

__all__ = [
    'User', 'Store', 'Product',
    'Order', 'OrderItem',
    'InventoryProduct', 'Supplier',
    'Customer',
    'Sale', 'SaleItem',
    'Payment', 'Wallet', 'WalletTransaction', 'Refund',
    'LoyaltyAccount', 'LoyaltyTransaction', 'LoyaltyReward', 'CustomerRedemption',
    'VendorReview', 'VendorResponse', 'VendorPerformance',
    'DeliveryZone', 'DriverLocation', 'DriverPerformance', 'DeliveryRoute',
    'Conversation', 'ChatMessage', 'SupportTicket', 'Notification',
]
