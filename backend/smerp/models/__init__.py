from .auth import User, UserPermission, SessionToken, UserActivity
from .partners import Partner
from .catalog import Category, Item, Barcode
from .inventory import Inventory, InventoryHistory
from .transactions import Transaction, TransactionItem
from .accounting import Account, Voucher, VoucherItem, Payment, TaxInvoice
from .notifications import Notification, UserNotificationSetting
from .settings import Setting, ScheduledTask
from .documents import DocumentSequence

__all__ = [
    'User', 'UserPermission', 'SessionToken', 'UserActivity',
    'Partner',
    'Category', 'Item', 'Barcode',
    'Inventory', 'InventoryHistory',
    'Transaction', 'TransactionItem',
    'Account', 'Voucher', 'VoucherItem', 'Payment', 'TaxInvoice',
    'Notification', 'UserNotificationSetting',
    'Setting', 'ScheduledTask',
    'DocumentSequence',
]
