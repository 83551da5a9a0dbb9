from .tenancy import Company, Location, Employee, TenantSettings, DocumentSequence
from .inventory import Item, StockLevel, CostLot, StockMovement, LotConsumption, CostAlert
from .customers import Customer, DebtAdjustment
from .sales import Order, OrderLine, Return, ReturnLine
from .cash import DeliveryTask, Collection, Deposit
from .expenses import Expense, SalaryPayment
from .purchasing import RawMaterialPurchase, PurchaseLine, PurchasePayment
from .production import ProductionRun, ProductionMaterial, ProductionCost
from .accounting import Account, JournalRecord, JournalLine

__all__ = [
    'Company', 'Location', 'Employee', 'TenantSettings', 'DocumentSequence',
    'Item', 'StockLevel', 'CostLot', 'StockMovement', 'LotConsumption', 'CostAlert',
    'Customer', 'DebtAdjustment',
    'Order', 'OrderLine', 'Return', 'ReturnLine',
    'DeliveryTask', 'Collection', 'Deposit',
    'Expense', 'SalaryPayment',
    'RawMaterialPurchase', 'PurchaseLine', 'PurchasePayment',
    'ProductionRun', 'ProductionMaterial', 'ProductionCost',
    'Account', 'JournalRecord', 'JournalLine',
]
