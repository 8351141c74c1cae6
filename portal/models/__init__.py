# Models package
from portal.models.factory import Factory
from portal.models.user import User, UserRole, UserLineAssignment
from portal.models.setup import Unit, Floor, Line, Stage, BlockerType, DropdownOption
from portal.models.work_orders import WorkOrder, WorkOrderLineAssignment, ExtrasLedgerEntry
from portal.models.submissions import (SewingTarget, SewingActual, FinishingTarget, FinishingActual,
                                       CuttingTarget, CuttingActual)
from portal.models.storage import BinCard, BinCardTransaction

__all__ = [
    'Factory',
    'User', 'UserRole', 'UserLineAssignment',
    'Unit', 'Floor', 'Line', 'Stage', 'BlockerType', 'DropdownOption',
    'WorkOrder', 'WorkOrderLineAssignment', 'ExtrasLedgerEntry',
    'SewingTarget', 'SewingActual', 'FinishingTarget', 'FinishingActual',
    'CuttingTarget', 'CuttingActual',
    'BinCard', 'BinCardTransaction'
]
