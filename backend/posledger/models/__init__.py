from .auth import User, SessionToken
from .inventory import Product
from .sales import Sale, ProductReturn, ReceiptSequence
from .hr import WorkSession, PayrollInfo, PayrollSummary
from .customers import LoyaltyProgram, Customer, LoyaltyTransaction
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem

__all__ = [
    'User', 'SessionToken',
    'Product',
    'Sale', 'ProductReturn', 'ReceiptSequence',
    'WorkSession', 'PayrollInfo', 'PayrollSummary',
    'LoyaltyProgram', 'Customer', 'LoyaltyTransaction',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem',
]
