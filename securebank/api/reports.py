"""
Staff reporting endpoints
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends

from .dependencies import get_banking_system, get_caller
from ..exceptions import ValidationError
from ..reporting import ReportType
from ..roles import CallerContext, UserRole
from ..system import BankingSystem


router = APIRouter()


@router.get("/summary")
def transaction_summary(
    report_type: str = "All",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Count and volume of transactions by type for a period"""
    caller.require([UserRole.ADMIN, UserRole.STAFF], "view financial reports")
    try:
        kind = ReportType(report_type.strip().capitalize())
    except ValueError:
        raise ValidationError(f"Unknown report type '{report_type}'")

    summary = system.reporting_engine.transaction_summary(kind, start, end)
    return {
        "report_type": summary.report_type.value,
        "transaction_count": summary.transaction_count,
        "total_volume": str(summary.total_volume),
        "by_type": {
            name: {"count": bucket["count"], "volume": str(bucket["volume"])}
            for name, bucket in summary.by_type.items()
        }
    }


@router.get("/reconcile")
def reconcile(
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    caller.require([UserRole.ADMIN, UserRole.STAFF], "run reconciliation")
    mismatches = system.reporting_engine.reconcile()
    return {
        "consistent": not mismatches,
        "mismatches": [
            {key: str(value) if not isinstance(value, int) else value for key, value in m.items()}
            for m in mismatches
        ]
    }
