from .auth import User, SessionToken
from .customers import Customer
from .inventory import Product, SerializedUnit
from .sales import Sale, SaleItem, PaymentInstallment, Payment
from .registers import CashRegister, CashMovement, CashRegisterSale
from .ledger import AuditEvent

__all__ = [
    'User', 'SessionToken',
    'Customer',
    'Product', 'SerializedUnit',
    'Sale', 'SaleItem', 'PaymentInstallment', 'Payment',
    'CashRegister', 'CashMovement', 'CashRegisterSale',
    'AuditEvent',
]
