from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

from institute.schemas.entity_schemas import (
    Application,
    Certificate,
    ContactMessage,
    Course,
    Enquiry,
    EntityRecord,
    EntityType,
    REMOTE_PROVENANCE_PREFIX,
    Student,
)
from institute.utils.logging import get_logger

logger = get_logger()


@dataclass(frozen=True)
class EntityDefinition:
    """Where one entity type lives in every tier, and how its rows are shaped."""

    entity_type: EntityType
    model: Type[EntityRecord]
    cache_key: str
    table: str
    key_columns: Tuple[str, ...] = ("id",)
    order_column: str = "created_at"
    api_path: Optional[str] = None
    api_delete_path: Optional[str] = None
    # extra tables tried, in order, when deleting
    delete_tables: Tuple[str, ...] = field(default_factory=tuple)
    # ids are assigned before the first write and the remote write is an upsert
    client_assigned_ids: bool = False
    # prefix marking cache copies that mirror a remote row
    remote_cache_prefix: str = ""

    @property
    def id_prefix(self) -> str:
        return self.model.ID_PREFIX

    @property
    def natural_key(self) -> Optional[str]:
        return self.model.NATURAL_KEY

    @property
    def tables_for_delete(self) -> Tuple[str, ...]:
        return self.delete_tables or (self.table,)


class EntityRegistry:
    """Registry of entity definitions keyed by entity type"""

    _definitions: Dict[EntityType, EntityDefinition] = {
        EntityType.ENQUIRIES: EntityDefinition(
            entity_type=EntityType.ENQUIRIES,
            model=Enquiry,
            cache_key="admin.enquiries",
            table="enquiries",
            key_columns=("id", "enquiry_id"),
            api_path="/api/public/enquiries",
        ),
        EntityType.APPLICATIONS: EntityDefinition(
            entity_type=EntityType.APPLICATIONS,
            model=Application,
            cache_key="public.applications",
            table="applications",
            key_columns=("app_id", "id"),
            api_path="/api/public/applications",
            api_delete_path="/api/public/applications/delete",
            delete_tables=("applications", "public_applications"),
        ),
        EntityType.COURSES: EntityDefinition(
            entity_type=EntityType.COURSES,
            model=Course,
            cache_key="admin.courses",
            table="courses",
            remote_cache_prefix=REMOTE_PROVENANCE_PREFIX,
        ),
        EntityType.STUDENTS: EntityDefinition(
            entity_type=EntityType.STUDENTS,
            model=Student,
            cache_key="admin.students",
            table="students",
            client_assigned_ids=True,
        ),
        EntityType.CERTIFICATES: EntityDefinition(
            entity_type=EntityType.CERTIFICATES,
            model=Certificate,
            cache_key="admin.certificates",
            table="certificates",
            order_column="requested_at",
            client_assigned_ids=True,
        ),
        EntityType.CONTACTS: EntityDefinition(
            entity_type=EntityType.CONTACTS,
            model=ContactMessage,
            cache_key="admin.contacts",
            table="contacts",
            api_path="/api/contact-submissions",
            api_delete_path="/api/contact-submissions/delete",
            delete_tables=("contacts", "contact_submissions"),
        ),
    }

    @classmethod
    def get(cls, entity_type: EntityType) -> EntityDefinition:
        """Definition for an entity type; accepts the enum or its string value"""
        return cls._definitions[EntityType(entity_type)]

    @classmethod
    def by_cache_key(cls, cache_key: str) -> Optional[EntityDefinition]:
        for definition in cls._definitions.values():
            if definition.cache_key == cache_key:
                return definition
        return None

    @classmethod
    def register(cls, definition: EntityDefinition):
        """Register or replace the definition of an entity type"""
        cls._definitions[definition.entity_type] = definition
        logger.info(f"Registered entity definition: {definition.entity_type.value}")

    @classmethod
    def list_entity_types(cls) -> List[EntityType]:
        return list(cls._definitions.keys())
