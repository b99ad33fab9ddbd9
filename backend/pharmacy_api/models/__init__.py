from .tenancy import Tenant, Branch
from .auth import User, SessionToken
from .inventory import Product, InventoryRecord
from .patients import Patient
from .sales import Sale, SaleItem, SALE_STATUSES, PAYMENT_STATUSES, PAYMENT_METHODS
from .prescriptions import Prescription, PrescriptionItem, PRESCRIPTION_STATUSES

__all__ = [
    'Tenant', 'Branch',
    'User', 'SessionToken',
    'Product', 'InventoryRecord',
    'Patient',
    'Sale', 'SaleItem',
    'SALE_STATUSES', 'PAYMENT_STATUSES', 'PAYMENT_METHODS',
    'Prescription', 'PrescriptionItem', 'PRESCRIPTION_STATUSES',
]
