from feeledger.core.models.school import School
from feeledger.core.models.student import Student
from feeledger.core.models.fee_head import FeeHead
from feeledger.core.models.fee_structure import FeeStructure, FeeStructureItem
from feeledger.core.models.student_fee import StudentFee
from feeledger.core.models.fee_installment import FeeInstallment
from feeledger.core.models.fee_adjustment import FeeAdjustment
from feeledger.core.models.payment import Payment, PaymentAllocation
from feeledger.core.models.receipt import Receipt
from feeledger.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "School",
    "Student",
    "FeeHead",
    "FeeStructure",
    "FeeStructureItem",
    "StudentFee",
    "FeeInstallment",
    "FeeAdjustment",
    "Payment",
    "PaymentAllocation",
    "Receipt",
    "FeeAuditLog",
]
