from .inventory import Product
from .customers import Customer
from .finance import Transaction, Receivable
from .repairs import ServiceTicket
from .targets import Target
from .ledger import WorkflowEvent

__all__ = [
    'Product',
    'Customer',
    'Transaction', 'Receivable',
    'ServiceTicket',
    'Target',
    'WorkflowEvent',
]
