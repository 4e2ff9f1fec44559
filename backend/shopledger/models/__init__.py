from .catalog import Product, Customer, Supplier
from .accounting import Account, Transaction, LedgerEntry
from .trade import Sale, SaleItem, Purchase, PurchaseItem
from .invoices import Invoice, InvoiceItem
from .documents import Return, ReturnItem, DocumentSequence

__all__ = [
    'Product', 'Customer', 'Supplier',
    'Account', 'Transaction', 'LedgerEntry',
    'Sale', 'SaleItem', 'Purchase', 'PurchaseItem',
    'Invoice', 'InvoiceItem',
    'Return', 'ReturnItem', 'DocumentSequence',
]
