from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

from pydantic import Field

from institute.schemas.camel_base_model import CamelCaseBaseModel
from institute.schemas.entity_schemas import (
    Application,
    ApplicationStatus,
    Enquiry,
    EntityRecord,
    EntityType,
    FeePlan,
    Student,
)
from institute.services.reconciliation.service import ReconciliationService
from institute.utils.datetime_utils import parse_iso, same_day, utc_now
from institute.utils.logging import get_logger

logger = get_logger()

PAID = "Paid"
OVERDUE = "Overdue"
UNPAID = "Unpaid"


def payment_status(fee: FeePlan, now: Optional[datetime] = None) -> str:
    """Paid when every installment is paid, Overdue when an unpaid one is past due, else Unpaid."""
    now = now or utc_now()
    installments = fee.installments
    if installments and all(inst.paid_at for inst in installments):
        return PAID
    for inst in installments:
        if inst.paid_at:
            continue
        due = parse_iso(inst.due_date)
        if due is not None and due < now:
            return OVERDUE
    return UNPAID


def aggregate_income(students: Iterable[Student]) -> float:
    """Sum of paid installments over all students."""
    return sum(
        inst.amount
        for student in students
        for inst in student.fee.installments
        if inst.paid_at
    )


def todays_follow_ups(enquiries: Iterable[Enquiry], today: date) -> List[Enquiry]:
    return [e for e in enquiries if same_day(e.next_follow, today)]


def pending_applications_count(applications: Iterable[Application]) -> int:
    return sum(1 for a in applications if a.status == ApplicationStatus.PENDING)


def recent(records: Sequence[EntityRecord], n: int = 5) -> List[EntityRecord]:
    """First `n` records of an already newest-first collection."""
    return list(records[:n])


class DashboardStats(CamelCaseBaseModel):
    enquiries_count: int = Field(0, description="Number of enquiries")
    pending_applications: int = Field(0, description="Applications awaiting review")
    overdue_applications: int = Field(0, description="Applications with an overdue installment")
    students_count: int = Field(0, description="Number of students")
    total_income: float = Field(0, description="Sum of paid student installments")
    todays_follow_ups: int = Field(0, description="Enquiries to follow up today")
    recent_enquiries: List[dict] = Field(default_factory=list, description="Latest enquiries")


class DashboardStatsService:
    """Service for dashboard statistics computed over reconciled collections."""

    def __init__(self, service: ReconciliationService):
        self.service = service

    async def get_dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        today = today or utc_now().date()
        enquiries = await self.service.reconcile(EntityType.ENQUIRIES)
        applications = await self.service.reconcile(EntityType.APPLICATIONS)
        students = await self.service.reconcile(EntityType.STUDENTS)

        return DashboardStats(
            enquiries_count=len(enquiries),
            pending_applications=pending_applications_count(applications),
            overdue_applications=sum(
                1 for a in applications if payment_status(a.fee) == OVERDUE
            ),
            students_count=len(students),
            total_income=aggregate_income(students),
            todays_follow_ups=len(todays_follow_ups(enquiries, today)),
            recent_enquiries=[e.to_cache() for e in recent(enquiries)],
        )
