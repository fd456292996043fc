"""Imports every model module so the tables register on ``Base.metadata``."""

from .rbac_module.models import (  # noqa: F401
    AuditLog,
    CustomRole,
    Notification,
    NotificationRead,
    Organization,
    RolePermission,
    User,
)
from .assessment_module.models import (  # noqa: F401
    AssessmentResult,
    Gradebook,
    GradebookComponent,
    GradebookMark,
    GradebookTrainee,
    Qualification,
    QualificationApproval,
    UnitStandard,
)
from .admissions_module.models import ProvisioningLog, Registration, Trainee, TraineeApplication  # noqa: F401
from .finance_module.models import (  # noqa: F401
    FeeType,
    FinancialQueueEntry,
    FinancialTransaction,
    TraineeFinancialAccount,
)
from .hostel_module.models import HostelAllocation, HostelBed, HostelBuilding, HostelFee, HostelRoom  # noqa: F401
from .inventory_module.models import Asset, AssetDepreciation, StockCategory, StockItem, StockMovement  # noqa: F401
from .procurement_module.models import (  # noqa: F401
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseRequisition,
    ReceivingReport,
    ReceivingReportItem,
    RequisitionItem,
    Supplier,
)
