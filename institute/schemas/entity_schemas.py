from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_camel

from institute.schemas.camel_base_model import CamelCaseBaseModel
from institute.utils.datetime_utils import iso_plus_days
from institute.utils.field_aliases import is_blank, resolve_fields
from institute.utils.logging import get_logger

logger = get_logger()

# Prefix of cache copies whose identity came from the remote store
REMOTE_PROVENANCE_PREFIX = "SB-"


class EntityType(str, Enum):
    ENQUIRIES = "enquiries"
    APPLICATIONS = "applications"
    COURSES = "courses"
    STUDENTS = "students"
    CERTIFICATES = "certificates"
    CONTACTS = "contacts"


class EnquiryStage(str, Enum):
    PROSPECTIVE = "Prospective"
    NEED_ANALYSIS = "Need Analysis"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"


class EnquiryStatus(str, Enum):
    PENDING = "Pending"
    ENROLLED = "Enrolled"
    NOT_INTERESTED = "Not Interested"


class ApplicationStatus(str, Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    SUSPENDED = "Suspended"


class CourseStatus(str, Enum):
    LIVE = "live"
    UPCOMING = "upcoming"


class CertificateStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PRINTED = "Printed"
    DISPATCHED = "Dispatched"
    REPRINTING = "Reprinting"


def _json_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    if isinstance(value, dict):
        return {key: _json_value(val) for key, val in value.items()}
    return value


class EntityRecord(CamelCaseBaseModel):
    """
    Canonical shape shared by every entity collection.

    Rows from the remote store, the secondary API and the local cache are all
    mapped through `from_row`, which resolves each logical field against an
    ordered alias list (first non-null wins) and fills defaults
    deterministically, so mapping the same row twice yields the same record.
    """

    ID_PREFIX: ClassVar[str] = "REC"
    ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {}
    REQUIRED: ClassVar[Tuple[str, ...]] = ()
    NATURAL_KEY: ClassVar[Optional[str]] = None
    # logical patch key -> remote column, when they differ
    REMOTE_COLUMNS: ClassVar[Dict[str, str]] = {}
    # remote rows hold the whole record, so patches need the current copy
    PATCH_NEEDS_CURRENT: ClassVar[bool] = False

    id: str
    created_at: Optional[str] = None

    @classmethod
    def field_aliases(cls) -> Dict[str, Tuple[str, ...]]:
        aliases: Dict[str, Tuple[str, ...]] = {}
        for name in cls.model_fields:
            camel = to_camel(name)
            aliases[name] = cls.ALIASES.get(name, (name, camel) if camel != name else (name,))
        return aliases

    @classmethod
    def canonical_id(cls, raw: Any) -> str:
        return str(raw)

    @classmethod
    def prepare(cls, values: Dict[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
        """Hook for entity-specific defaults and nesting of flat columns."""
        return values

    @classmethod
    def from_row(cls, row: Mapping[str, Any]):
        """Map a loosely-shaped row into the canonical record, or None when it has no identity."""
        if not isinstance(row, Mapping):
            return None
        values = resolve_fields(row, cls.field_aliases())
        if is_blank(values.get("id")):
            return None
        values["id"] = cls.canonical_id(values["id"])
        values = cls.prepare(values, row)
        values = cls._coerce_choices(values)
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            logger.warning(f"Skipping malformed {cls.__name__} row {values.get('id')}: {e}")
            return None

    @classmethod
    def _coerce_choices(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        """Match status and stage labels case-insensitively; unknown labels fall back to the field default."""
        for name, field in cls.model_fields.items():
            choices = field.annotation
            value = values.get(name)
            if not (isinstance(choices, type) and issubclass(choices, Enum)) or value is None:
                continue
            if isinstance(value, choices):
                continue
            label = str(value).strip().casefold()
            match = next(
                (c for c in choices if label in (c.value.casefold(), c.name.casefold())), None
            )
            if match is None:
                logger.warning(
                    f"Unknown {name} {value!r} on {cls.__name__} {values.get('id')}, "
                    f"using {field.default.value!r}"
                )
                values.pop(name)
            else:
                values[name] = match
        return values

    @classmethod
    def missing_required(cls, payload: Mapping[str, Any]) -> List[str]:
        return [name for name in cls.REQUIRED if is_blank(payload.get(name))]

    @classmethod
    def cache_patch(cls, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a logical (snake_case) patch into the camelCase cache shape."""
        result: Dict[str, Any] = {}
        for key, value in patch.items():
            field = cls.model_fields.get(key)
            alias = field.alias if field is not None and field.alias else key
            result[alias] = _json_value(value)
        return result

    @classmethod
    def remote_patch(
        cls, patch: Mapping[str, Any], current: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Translate a logical patch into remote store columns."""
        return {
            cls.REMOTE_COLUMNS.get(key, key): _json_value(value)
            for key, value in patch.items()
            if key != "id"
        }

    def natural_key(self) -> Optional[str]:
        if not self.NATURAL_KEY:
            return None
        value = getattr(self, self.NATURAL_KEY, None)
        return value.strip().casefold() if isinstance(value, str) and value.strip() else None

    def to_cache(self) -> Dict[str, Any]:
        return self.to_json_dict()

    def to_remote_row(self) -> Dict[str, Any]:
        """Row written to the remote store; the remote store assigns the id."""
        row = self.model_dump(mode="json", exclude={"id"})
        return {key: value for key, value in row.items() if value is not None}


# Enquiries


class Enquiry(EntityRecord):
    ID_PREFIX: ClassVar[str] = "ENQ"
    ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "id": ("id", "enquiry_id", "enquiryId"),
        "contact": ("contact", "phone"),
        "next_follow": ("next_follow", "nextFollow", "preferred_start", "preferredStart"),
        "created_at": ("created_at", "createdAt"),
    }
    REQUIRED: ClassVar[Tuple[str, ...]] = ("name", "course", "contact")

    name: str = ""
    course: str = ""
    contact: str = ""
    email: Optional[str] = None
    gender: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    area: Optional[str] = None
    campus: Optional[str] = None
    next_follow: Optional[str] = None
    probability: int = 50
    sources: List[str] = Field(default_factory=list)
    source: Optional[str] = None
    remarks: Optional[str] = None
    stage: EnquiryStage = EnquiryStage.PROSPECTIVE
    status: EnquiryStatus = EnquiryStatus.PENDING

    @classmethod
    def prepare(cls, values: Dict[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
        if "source" not in values:
            sources = values.get("sources") or []
            values["source"] = sources[0] if sources else "Website"
        return values


# Applications / admissions


class Installment(CamelCaseBaseModel):
    id: str
    amount: float = 0
    due_date: Optional[str] = None
    paid_at: Optional[str] = None


class FeePlan(CamelCaseBaseModel):
    total: float = 0
    installments: List[Installment] = Field(default_factory=list)


class StudentContact(CamelCaseBaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    dob: Optional[str] = None
    address: Optional[str] = None


class Document(CamelCaseBaseModel):
    name: str
    url: str = "#"
    verified: bool = False


def _installments(raw: Any, default_due: Optional[str]) -> List[Dict[str, Any]]:
    if not isinstance(raw, list) or not raw:
        return []
    installments = []
    for index, inst in enumerate(raw):
        if not isinstance(inst, Mapping):
            continue
        installments.append(
            {
                "id": str(inst.get("id") or f"I{index + 1}"),
                "amount": inst.get("amount") or 0,
                "due_date": inst.get("due_date") or inst.get("dueDate") or default_due,
                "paid_at": inst.get("paid_at") or inst.get("paidAt"),
            }
        )
    return installments


def _fee_plan(values: Dict[str, Any], row: Mapping[str, Any], default_due: Optional[str]) -> Dict[str, Any]:
    fee = row.get("fee")
    if isinstance(fee, Mapping):
        return {
            "total": fee.get("total") or 0,
            "installments": _installments(fee.get("installments"), default_due),
        }
    total = values.pop("fee_total", 0) or 0
    installments = _installments(values.pop("installments", None), default_due)
    if not installments:
        installments = [
            {
                "id": "due",
                "amount": total,
                "due_date": values.get("next_due_date") or default_due,
            }
        ]
    return {"total": total, "installments": installments}


class Application(EntityRecord):
    ID_PREFIX: ClassVar[str] = "APP"
    ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "id": ("app_id", "id", "appId", "appID", "uuid"),
        "created_at": ("created_at", "createdAt"),
        "student_id": ("student_id", "studentId"),
        "rejected_reason": ("rejected_reason", "rejectedReason"),
        "preferred_start": ("preferred_start", "preferredStart", "start_date", "startDate"),
    }
    # flat remote columns folded into nested fields by `prepare`
    FLAT_ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "fee_total": ("fee_total", "feeTotal"),
        "installments": ("fee_installments", "feeInstallments"),
        "next_due_date": ("next_due_date", "nextDueDate"),
    }
    REQUIRED: ClassVar[Tuple[str, ...]] = ("name", "email", "phone", "course")
    REMOTE_COLUMNS: ClassVar[Dict[str, str]] = {"preferred_start": "start_date"}

    status: ApplicationStatus = ApplicationStatus.PENDING
    student: StudentContact = Field(default_factory=StudentContact)
    course: str = ""
    batch: str = "TBD"
    campus: str = "Main"
    fee: FeePlan = Field(default_factory=FeePlan)
    documents: List[Document] = Field(default_factory=list)
    notes: Optional[str] = None
    student_id: Optional[str] = None
    rejected_reason: Optional[str] = None
    preferred_start: Optional[str] = None

    @classmethod
    def prepare(cls, values: Dict[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
        values.update(resolve_fields(row, cls.FLAT_ALIASES))
        student = row.get("student")
        if isinstance(student, Mapping):
            values["student"] = dict(student)
        else:
            values["student"] = {
                key: row[key]
                for key in ("name", "email", "phone", "dob", "address")
                if row.get(key) is not None
            }
        # due date defaults are derived from the record itself so re-mapping is stable
        default_due = values.get("preferred_start") or iso_plus_days(values.get("created_at"), 7)
        values["fee"] = _fee_plan(values, row, default_due)
        values.pop("next_due_date", None)
        documents = row.get("documents")
        values["documents"] = [
            {
                "name": str(doc.get("name") or f"Document {index + 1}"),
                "url": str(doc.get("url") or "#"),
                "verified": bool(doc.get("verified")),
            }
            for index, doc in enumerate(documents if isinstance(documents, list) else [])
            if isinstance(doc, Mapping)
        ]
        if not values.get("notes") and values.get("preferred_start"):
            values["notes"] = f"Preferred start: {values['preferred_start']}"
        return values

    @classmethod
    def missing_required(cls, payload: Mapping[str, Any]) -> List[str]:
        student = payload.get("student") if isinstance(payload.get("student"), Mapping) else {}
        merged = {**student, **payload}
        return [name for name in cls.REQUIRED if is_blank(merged.get(name))]

    @classmethod
    def remote_patch(
        cls, patch: Mapping[str, Any], current: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        columns: Dict[str, Any] = {}
        for key, value in patch.items():
            if key == "id":
                continue
            if key == "fee":
                fee = value if isinstance(value, FeePlan) else FeePlan.model_validate(value)
                columns["fee_total"] = fee.total
                columns["fee_installments"] = _json_value(fee.installments)
            elif key == "student":
                student = value if isinstance(value, StudentContact) else StudentContact.model_validate(value)
                columns.update(student.model_dump(exclude_none=True))
            else:
                columns[cls.REMOTE_COLUMNS.get(key, key)] = _json_value(value)
        return columns

    def to_remote_row(self) -> Dict[str, Any]:
        row = self.remote_patch(
            {
                "student": self.student,
                "course": self.course,
                "batch": self.batch,
                "campus": self.campus,
                "status": self.status,
                "fee": self.fee,
                "documents": self.documents,
                "notes": self.notes,
                "student_id": self.student_id,
                "rejected_reason": self.rejected_reason,
                "preferred_start": self.preferred_start,
                "created_at": self.created_at,
            }
        )
        return {key: value for key, value in row.items() if value is not None}


# Courses


class Course(EntityRecord):
    ID_PREFIX: ClassVar[str] = "CRS"
    ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "fees": ("fees", "fee", "price"),
        "start_date": ("start_date", "startDate"),
        "created_at": ("created_at", "createdAt"),
    }
    REQUIRED: ClassVar[Tuple[str, ...]] = ("name",)
    NATURAL_KEY: ClassVar[Optional[str]] = "name"

    name: str = ""
    category: str = "Development"
    duration: str = ""
    fees: float = 0
    description: str = ""
    featured: bool = False
    status: CourseStatus = CourseStatus.LIVE
    start_date: Optional[str] = None

    @classmethod
    def canonical_id(cls, raw: Any) -> str:
        identity = str(raw)
        if identity.startswith(REMOTE_PROVENANCE_PREFIX):
            return identity[len(REMOTE_PROVENANCE_PREFIX):]
        return identity


# Students


class Admission(CamelCaseBaseModel):
    course: str = ""
    batch: str = ""
    campus: str = ""
    date: Optional[str] = None


class Student(EntityRecord):
    ID_PREFIX: ClassVar[str] = "STU"
    PATCH_NEEDS_CURRENT: ClassVar[bool] = True
    REQUIRED: ClassVar[Tuple[str, ...]] = ("name",)

    name: str = ""
    email: str = ""
    phone: str = ""
    status: str = "Current"
    admission: Admission = Field(default_factory=Admission)
    fee: FeePlan = Field(default_factory=FeePlan)
    attendance: List[Dict[str, Any]] = Field(default_factory=list)
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    communications: List[Dict[str, Any]] = Field(default_factory=list)
    enrolled_courses: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]):
        # remote rows may wrap the whole record in a JSON `record` column
        record = row.get("record") if isinstance(row, Mapping) else None
        if isinstance(record, Mapping):
            merged = {**record}
            merged.setdefault("id", row.get("id"))
            if merged.get("created_at") is None and merged.get("createdAt") is None:
                merged["created_at"] = row.get("created_at") or row.get("createdAt")
            row = merged
        return super().from_row(row)

    @classmethod
    def prepare(cls, values: Dict[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(row.get("admission"), Mapping):
            values["admission"] = {
                "course": row.get("course") or "",
                "batch": row.get("batch") or "",
                "campus": row.get("campus") or "",
                "date": row.get("date") or values.get("created_at"),
            }
        if not isinstance(row.get("fee"), Mapping):
            values["fee"] = {
                "total": row.get("fee_total") or 0,
                "installments": _installments(row.get("fee_installments"), None),
            }
        else:
            values["fee"] = _fee_plan(values, row, None)
        return values

    @classmethod
    def remote_patch(
        cls, patch: Mapping[str, Any], current: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        record = {**(current or {}), **cls.cache_patch(patch)}
        record.pop("id", None)
        return {"record": record}

    def to_remote_row(self) -> Dict[str, Any]:
        return {"id": self.id, "record": self.to_cache(), "created_at": self.created_at}


# Certificates


class Certificate(EntityRecord):
    ID_PREFIX: ClassVar[str] = "CRT"
    ALIASES: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "created_at": ("created_at", "createdAt", "requested_at", "requestedAt"),
        "requested_at": ("requested_at", "requestedAt", "created_at", "createdAt"),
    }
    REQUIRED: ClassVar[Tuple[str, ...]] = ("student_name", "course")

    student_id: str = ""
    student_name: str = ""
    course: str = ""
    batch: str = ""
    campus: str = ""
    type: str = "Completion"
    status: CertificateStatus = CertificateStatus.PENDING
    requested_at: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_reason: Optional[str] = None
    courier_tracking_id: Optional[str] = None

    def to_remote_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json", exclude={"created_at"})
        row["requested_at"] = self.requested_at or self.created_at
        return {key: value for key, value in row.items() if value is not None}


# Contact messages


class ContactMessage(EntityRecord):
    ID_PREFIX: ClassVar[str] = "MSG"
    REQUIRED: ClassVar[Tuple[str, ...]] = ("name", "email", "message")

    name: str = ""
    email: str = ""
    message: str = ""
    ip: Optional[str] = None

    @classmethod
    def prepare(cls, values: Dict[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
        for key in ("name", "message"):
            if isinstance(values.get(key), str):
                values[key] = values[key].strip()
        if isinstance(values.get("email"), str):
            values["email"] = values["email"].strip().lower()
        return values
