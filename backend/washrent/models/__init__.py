from .equipment import Equipment, MaintenanceRecord, MaintenanceCost
from .orders import Order, OrderPayment
from .capital import CapitalEvent, ExpenseConcept, Expense

__all__ = [
    'Equipment', 'MaintenanceRecord', 'MaintenanceCost',
    'Order', 'OrderPayment',
    'CapitalEvent', 'ExpenseConcept', 'Expense',
]
