import re

import pytest

from institute.config.settings import Settings
from institute.db.storage import MemoryStorage
from institute.schemas.auth_schemas import AuthUser
from institute.schemas.entity_schemas import EntityType
from institute.schemas.reconciliation_schemas import (
    CreateIntent,
    DeleteIntent,
    OutcomeSource,
    UpdateIntent,
)
from institute.services.reconciliation.factory import create_reconciliation_service
from institute.services.reconciliation.service import SAVED_LOCALLY, ReconciliationService
from institute.utils.errors import AuthorizationError, RecordValidationError
from institute.utils.global_context import AppContext

from tests.fakes import API_BASE_URL, OWNER_EMAIL, FakePublicApi, FakeSupabase, build_service

ALI_RAZA = {"name": "Ali Raza", "course": "UI/UX Design", "contact": "0301-1234567"}

pytestmark = pytest.mark.integration


def enquiry_row(record_id, name, created_at, **extra):
    return {"id": record_id, "name": name, "course": "Python", "phone": "0300", "created_at": created_at, **extra}


class TestReconcile:
    """Merged read across remote store, secondary API and cache."""

    @pytest.mark.asyncio
    async def test_remote_wins_over_api_copy(
        self, service: ReconciliationService, fake_supabase: FakeSupabase, fake_api: FakePublicApi
    ):
        """Test an identity present remotely and in the API keeps the remote version."""
        fake_supabase.seed("enquiries", [enquiry_row(5, "Remote", "2024-05-01T00:00:00Z")])
        fake_api.collections["/api/public/enquiries"] = [
            {"id": "5", "name": "Api copy", "createdAt": "2024-05-01T00:00:00Z"},
            {"id": "ENQ-9", "name": "Api only", "createdAt": "2024-06-01T00:00:00Z"},
        ]

        records = await service.reconcile(EntityType.ENQUIRIES)

        assert [r.id for r in records] == ["ENQ-9", "5"]
        assert records[1].name == "Remote"
        assert records[1].contact == "0300"

    @pytest.mark.asyncio
    async def test_cache_merged_when_api_fails(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi
    ):
        """Test the cache fills in when the API call fails, without shadowing remote rows."""
        fake_api.down = True
        fake_supabase.seed("enquiries", [enquiry_row(5, "Remote", "2024-05-01T00:00:00Z")])
        context.cache.replace_all(
            EntityType.ENQUIRIES,
            [
                {"id": "5", "name": "Stale local", "createdAt": "2024-05-01T00:00:00Z"},
                {"id": "ENQ-1", "name": "Local only", "createdAt": "2024-04-01T00:00:00Z"},
            ],
        )

        records = await service.reconcile(EntityType.ENQUIRIES)

        assert [(r.id, r.name) for r in records] == [("5", "Remote"), ("ENQ-1", "Local only")]

    @pytest.mark.asyncio
    async def test_cache_skipped_when_api_succeeds(
        self, service: ReconciliationService, context: AppContext
    ):
        """Test a reachable API replaces the cache as fallback source."""
        context.cache.replace_all(EntityType.ENQUIRIES, [{"id": "ENQ-1", "name": "Local only"}])

        records = await service.reconcile(EntityType.ENQUIRIES)

        assert records == []

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test two runs over the same inputs give the same ordered output."""
        context.cache.replace_all(
            EntityType.APPLICATIONS,
            [
                {"id": "APP-2", "student": {"name": "B"}, "createdAt": "2024-02-01T00:00:00Z"},
                {"id": "APP-1", "name": "A", "created_at": "2024-01-01T00:00:00Z"},
                {"id": "APP-3", "name": "C", "createdAt": "2024-02-01T00:00:00Z"},
            ],
        )

        first = await offline_service.reconcile(EntityType.APPLICATIONS)
        second = await offline_service.reconcile(EntityType.APPLICATIONS)

        assert [r.model_dump() for r in first] == [r.model_dump() for r in second]
        assert [r.id for r in first] == ["APP-2", "APP-3", "APP-1"]
        # derived due date comes from the record, not the clock
        assert first[2].fee.installments[0].due_date == "2024-01-08T00:00:00Z"

    @pytest.mark.asyncio
    async def test_invalid_timestamps_sort_last(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test missing or unparseable createdAt values sort as the oldest."""
        context.cache.replace_all(
            EntityType.ENQUIRIES,
            [
                {"id": "ENQ-1", "name": "Bad", "createdAt": "not-a-date"},
                {"id": "ENQ-2", "name": "Good", "createdAt": "2024-01-01T00:00:00Z"},
                {"id": "ENQ-3", "name": "Missing"},
            ],
        )

        records = await offline_service.reconcile(EntityType.ENQUIRIES)

        assert [r.id for r in records] == ["ENQ-2", "ENQ-1", "ENQ-3"]

    @pytest.mark.asyncio
    async def test_unconfigured_tiers_fall_back_to_cache(self, context: AppContext):
        """Test with no remote store and no API the cache is the only source."""
        service = build_service(context, None)
        context.cache.replace_all(EntityType.CONTACTS, [{"id": "MSG-1", "name": "N", "email": "A@B.C"}])

        records = await service.reconcile(EntityType.CONTACTS)

        assert [r.email for r in records] == ["a@b.c"]

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(
        self, service: ReconciliationService, fake_supabase: FakeSupabase
    ):
        """Test a row that fails validation is left out instead of failing the read."""
        fake_supabase.seed(
            "enquiries",
            [
                enquiry_row(1, "Fine", "2024-01-01T00:00:00Z"),
                enquiry_row(2, "Broken", "2024-01-02T00:00:00Z", probability="very likely"),
                {"name": "No identity"},
            ],
        )

        records = await service.reconcile(EntityType.ENQUIRIES)

        assert [r.name for r in records] == ["Fine"]

    @pytest.mark.asyncio
    async def test_courses_deduplicated_by_name(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase
    ):
        """Test a local course with the name of a remote course is shadowed by it."""
        fake_supabase.seed("courses", [{"id": 1, "name": "Data Science", "fees": 2000}])
        context.cache.replace_all(
            EntityType.COURSES, [{"id": "CRS-5", "name": "data science ", "fees": 1000}]
        )

        records = await service.reconcile(EntityType.COURSES)

        assert [(r.id, r.fees) for r in records] == [("1", 2000)]
        assert [c["id"] for c in context.cache.get(EntityType.COURSES)] == ["SB-1"]


class TestCreate:
    """Create intents."""

    @pytest.mark.asyncio
    async def test_missing_required_fields_do_no_io(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi
    ):
        """Test validation fails before any tier is touched."""
        with pytest.raises(RecordValidationError):
            await service.commit(
                EntityType.ENQUIRIES, CreateIntent(payload={"name": "Ali", "course": " "})
            )

        assert fake_supabase.calls == []
        assert fake_api.requests == []
        assert context.cache.get(EntityType.ENQUIRIES) == []

    @pytest.mark.asyncio
    async def test_remote_create_caches_remote_identity(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase
    ):
        """Test a remote insert leaves a cache copy keyed by the remote id."""
        outcome = await service.commit(EntityType.ENQUIRIES, CreateIntent(payload=ALI_RAZA))

        assert outcome.ok
        assert outcome.source == OutcomeSource.REMOTE
        assert outcome.notice is None
        assert fake_supabase.tables["enquiries"][0]["name"] == "Ali Raza"
        assert [r["id"] for r in context.cache.get(EntityType.ENQUIRIES)] == ["1"]

    @pytest.mark.asyncio
    async def test_api_create_when_remote_down(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi
    ):
        """Test the secondary API takes the write when the remote store is unreachable."""
        fake_supabase.offline = True

        outcome = await service.commit(EntityType.ENQUIRIES, CreateIntent(payload=ALI_RAZA))

        assert outcome.source == OutcomeSource.API
        assert fake_api.collections["/api/public/enquiries"][0]["name"] == "Ali Raza"
        assert context.cache.get(EntityType.ENQUIRIES)[0]["id"] == "API-1"

    @pytest.mark.asyncio
    async def test_remote_course_cached_with_provenance_prefix(
        self, service: ReconciliationService, context: AppContext
    ):
        """Test courses stored remotely are cached as `SB-<id>`."""
        outcome = await service.commit(
            EntityType.COURSES, CreateIntent(payload={"name": "Python", "fees": 900})
        )

        assert outcome.record["id"] == "SB-1"
        assert context.cache.find(EntityType.COURSES, "1")["fees"] == 900

    @pytest.mark.asyncio
    async def test_offline_create_keeps_one_local_copy(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test an offline create leaves exactly one record with a synthesized id."""
        outcome = await offline_service.commit(
            EntityType.CERTIFICATES,
            CreateIntent(payload={"student_name": "Zara", "course": "Python"}),
        )

        records = context.cache.get(EntityType.CERTIFICATES)
        assert outcome.source == OutcomeSource.LOCAL
        assert outcome.notice == SAVED_LOCALLY
        assert len(records) == 1
        assert re.fullmatch(r"CRT-\d+", records[0]["id"])
        assert records[0]["requestedAt"] == records[0]["createdAt"]


class TestUpdate:
    """Update intents."""

    @pytest.mark.asyncio
    async def test_remote_update_also_patches_cache(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase
    ):
        """Test a remote update is mirrored into the cache copy."""
        fake_supabase.seed("enquiries", [enquiry_row(5, "Ali", "2024-05-01T00:00:00Z")])
        context.cache.add(EntityType.ENQUIRIES, {"id": "5", "name": "Ali", "status": "Pending"})

        outcome = await service.commit(
            EntityType.ENQUIRIES, UpdateIntent(record_id="5", patch={"status": "Enrolled", "next_follow": "2024-06-01"})
        )

        assert outcome.ok
        assert outcome.source == OutcomeSource.REMOTE
        assert fake_supabase.tables["enquiries"][0]["status"] == "Enrolled"
        cached = context.cache.find(EntityType.ENQUIRIES, "5")
        assert cached["status"] == "Enrolled"
        assert cached["nextFollow"] == "2024-06-01"

    @pytest.mark.asyncio
    async def test_application_update_uses_app_id_column(
        self, service: ReconciliationService, fake_supabase: FakeSupabase
    ):
        """Test an application keyed on `app_id` is updated even though `id` is rejected."""
        fake_supabase.seed(
            "applications",
            [{"app_id": "APP-100", "name": "Sara", "email": "s@x.io", "phone": "1", "course": "Python", "status": "Pending"}],
        )
        fake_supabase.rejected_columns["applications"] = {"id"}

        outcome = await service.commit(
            EntityType.APPLICATIONS,
            UpdateIntent(record_id="APP-100", patch={"status": "Verified", "preferred_start": "2024-09-01"}),
        )

        row = fake_supabase.tables["applications"][0]
        assert outcome.ok
        assert outcome.record["id"] == "APP-100"
        assert row["status"] == "Verified"
        assert row["start_date"] == "2024-09-01"

    @pytest.mark.asyncio
    async def test_student_update_writes_whole_record(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase
    ):
        """Test a student patch is merged into the stored JSON record."""
        fake_supabase.seed("students", [{"id": "STU-1", "record": {"name": "Zara", "status": "Current"}}])
        context.cache.add(EntityType.STUDENTS, {"id": "STU-1", "name": "Zara", "status": "Current"})

        outcome = await service.commit(
            EntityType.STUDENTS, UpdateIntent(record_id="STU-1", patch={"status": "Alumni"})
        )

        record = fake_supabase.tables["students"][0]["record"]
        assert outcome.source == OutcomeSource.REMOTE
        assert record["name"] == "Zara"
        assert record["status"] == "Alumni"
        assert "id" not in record

    @pytest.mark.asyncio
    async def test_offline_update_saved_locally(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test a failed remote update patches the cache with a soft notice."""
        context.cache.add(EntityType.ENQUIRIES, {"id": "ENQ-1", "name": "Ali", "status": "Pending"})

        outcome = await offline_service.commit(
            EntityType.ENQUIRIES, UpdateIntent(record_id="ENQ-1", patch={"status": "Not Interested"})
        )

        assert outcome.ok
        assert outcome.source == OutcomeSource.LOCAL
        assert outcome.notice == SAVED_LOCALLY
        assert context.cache.find(EntityType.ENQUIRIES, "ENQ-1")["status"] == "Not Interested"

    @pytest.mark.asyncio
    async def test_update_of_unknown_record_fails(self, offline_service: ReconciliationService):
        """Test an update no tier can apply is reported as failure."""
        outcome = await offline_service.commit(
            EntityType.ENQUIRIES, UpdateIntent(record_id="ENQ-404", patch={"status": "Enrolled"})
        )

        assert not outcome.ok
        assert outcome.source == OutcomeSource.NONE


class TestDelete:
    """Delete intents: owner only, API then remote store then cache."""

    @pytest.fixture
    def seeded(self, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi):
        fake_supabase.seed("applications", [{"app_id": "APP-1", "name": "Sara"}])
        fake_api.collections["/api/public/applications"] = [{"id": "APP-1"}]
        context.cache.add(EntityType.APPLICATIONS, {"id": "APP-1", "name": "Sara"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("actor", [None, "limited"])
    async def test_non_owner_changes_nothing(
        self,
        actor,
        seeded,
        service: ReconciliationService,
        context: AppContext,
        fake_supabase: FakeSupabase,
        fake_api: FakePublicApi,
        limited_user: AuthUser,
    ):
        """Test a delete without an owner is rejected before any tier is touched."""
        with pytest.raises(AuthorizationError):
            await service.commit(
                EntityType.APPLICATIONS,
                DeleteIntent(record_id="APP-1"),
                actor=limited_user if actor else None,
            )

        assert fake_supabase.mutations() == []
        assert fake_api.requests == []
        assert fake_supabase.tables["applications"] == [{"app_id": "APP-1", "name": "Sara"}]
        assert context.cache.find(EntityType.APPLICATIONS, "APP-1") is not None

    @pytest.mark.asyncio
    async def test_api_rejection_does_not_fall_back(
        self, seeded, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi, owner: AuthUser
    ):
        """Test a 403 from the API is raised instead of deleting via a lower tier."""
        fake_api.delete_status = 403

        with pytest.raises(AuthorizationError):
            await service.commit(EntityType.APPLICATIONS, DeleteIntent(record_id="APP-1"), actor=owner)

        assert fake_supabase.mutations() == []
        assert context.cache.find(EntityType.APPLICATIONS, "APP-1") is not None

    @pytest.mark.asyncio
    async def test_remote_rejection_does_not_fall_back(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi, owner: AuthUser
    ):
        """Test a permission error from the remote store is raised and both copies are kept."""
        fake_api.down = True
        fake_supabase.seed("enquiries", [enquiry_row(5, "Ali Raza", "2024-05-01T00:00:00Z")])
        context.cache.add(EntityType.ENQUIRIES, {"id": "5", "name": "Ali Raza"})
        fake_supabase.failing_tables["enquiries"] = "42501"

        with pytest.raises(AuthorizationError):
            await service.commit(EntityType.ENQUIRIES, DeleteIntent(record_id="5"), actor=owner)

        assert [row["id"] for row in fake_supabase.tables["enquiries"]] == [5]
        assert context.cache.find(EntityType.ENQUIRIES, "5") is not None

    @pytest.mark.asyncio
    async def test_api_delete_purges_cache(
        self, seeded, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi, owner: AuthUser
    ):
        """Test the API delete wins and the cache copy is dropped."""
        outcome = await service.commit(
            EntityType.APPLICATIONS, DeleteIntent(record_id="APP-1"), actor=owner
        )

        assert outcome.source == OutcomeSource.API
        assert fake_api.collections["/api/public/applications"] == []
        assert fake_api.requests[-1].headers["authorization"] == "Bearer owner-token"
        assert fake_supabase.mutations() == []
        assert context.cache.get(EntityType.APPLICATIONS) == []

    @pytest.mark.asyncio
    async def test_remote_delete_tries_both_tables(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi, owner: AuthUser
    ):
        """Test the alternate application table is tried when the API is down."""
        fake_api.down = True
        fake_supabase.seed("public_applications", [{"id": 12, "name": "Sara"}])
        context.cache.add(EntityType.APPLICATIONS, {"id": "12", "name": "Sara"})

        outcome = await service.commit(
            EntityType.APPLICATIONS, DeleteIntent(record_id="12"), actor=owner
        )

        assert outcome.source == OutcomeSource.REMOTE
        assert fake_supabase.tables["public_applications"] == []
        assert context.cache.get(EntityType.APPLICATIONS) == []

    @pytest.mark.asyncio
    async def test_local_delete_when_offline(
        self, offline_service: ReconciliationService, context: AppContext, owner: AuthUser
    ):
        """Test the cache copy is removed when every upper tier fails."""
        context.cache.add(EntityType.ENQUIRIES, {"id": "ENQ-1", "name": "Ali"})

        outcome = await offline_service.commit(
            EntityType.ENQUIRIES, DeleteIntent(record_id="ENQ-1"), actor=owner
        )

        assert outcome.source == OutcomeSource.LOCAL
        assert context.cache.get(EntityType.ENQUIRIES) == []

    @pytest.mark.asyncio
    async def test_delete_fails_when_no_tier_has_record(
        self, offline_service: ReconciliationService, owner: AuthUser
    ):
        """Test exhausting every tier reports a hard failure."""
        outcome = await offline_service.commit(
            EntityType.ENQUIRIES, DeleteIntent(record_id="ENQ-404"), actor=owner
        )

        assert not outcome.ok
        assert outcome.error


class TestSyncPending:
    """Pushing local-only records once the remote store is back."""

    @pytest.mark.asyncio
    async def test_pending_records_are_pushed_oldest_first(
        self, offline_service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase
    ):
        """Test local records are inserted remotely and replaced by their remote copies."""
        await offline_service.commit(EntityType.ENQUIRIES, CreateIntent(payload={**ALI_RAZA, "name": "First"}))
        await offline_service.commit(EntityType.ENQUIRIES, CreateIntent(payload={**ALI_RAZA, "name": "Second"}))
        fake_supabase.offline = False

        report = await offline_service.sync_pending(EntityType.ENQUIRIES)

        assert len(report.pushed) == 2
        assert report.failed == []
        assert [row["name"] for row in fake_supabase.tables["enquiries"]] == ["First", "Second"]
        assert offline_service.pending(EntityType.ENQUIRIES) == []
        assert sorted(r["id"] for r in context.cache.get(EntityType.ENQUIRIES)) == ["1", "2"]

    @pytest.mark.asyncio
    async def test_api_accepted_records_are_not_pushed(
        self, service: ReconciliationService, context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi
    ):
        """Test a record the secondary API accepted is not re-inserted once the remote store is back."""
        fake_api.id_format = "ENQ-170000000000{}"
        fake_supabase.offline = True
        outcome = await service.commit(EntityType.ENQUIRIES, CreateIntent(payload=ALI_RAZA))
        fake_supabase.offline = False

        report = await service.sync_pending(EntityType.ENQUIRIES)
        records = await service.reconcile(EntityType.ENQUIRIES)

        assert outcome.source == OutcomeSource.API
        assert context.cache.get(EntityType.ENQUIRIES)[0]["id"] == "ENQ-1700000000001"
        assert service.pending(EntityType.ENQUIRIES) == []
        assert report.pushed == []
        assert fake_supabase.tables.get("enquiries", []) == []
        assert [r.name for r in records] == ["Ali Raza"]

    @pytest.mark.asyncio
    async def test_only_offline_writes_are_pending(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test an offline create is pending while an id in the same format seeded from elsewhere is not."""
        context.cache.add(EntityType.ENQUIRIES, {"id": "ENQ-1700000000000", "name": "From API"})
        outcome = await offline_service.commit(EntityType.ENQUIRIES, CreateIntent(payload=ALI_RAZA))

        assert [r["id"] for r in offline_service.pending(EntityType.ENQUIRIES)] == [outcome.record["id"]]

    @pytest.mark.asyncio
    async def test_sync_while_offline_keeps_records(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test records stay local-only when the push fails."""
        outcome = await offline_service.commit(EntityType.ENQUIRIES, CreateIntent(payload=ALI_RAZA))

        report = await offline_service.sync_pending(EntityType.ENQUIRIES)

        assert report.pushed == []
        assert report.failed == [outcome.record["id"]]
        assert context.cache.get(EntityType.ENQUIRIES)[0]["id"] == outcome.record["id"]


class TestScenarios:
    """End-to-end flows across tiers."""

    @pytest.mark.asyncio
    async def test_offline_enquiry_survives_and_is_listed_first(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test an enquiry created while the remote store is unreachable."""
        context.cache.add(
            EntityType.ENQUIRIES,
            {"id": "ENQ-1", "name": "Older", "course": "Python", "contact": "1", "createdAt": "2020-01-01T00:00:00.000Z"},
        )

        outcome = await offline_service.commit(EntityType.ENQUIRIES, CreateIntent(payload=ALI_RAZA))

        assert outcome.notice == SAVED_LOCALLY
        cached = [r for r in context.cache.get(EntityType.ENQUIRIES) if r["name"] == "Ali Raza"]
        assert len(cached) == 1
        assert re.fullmatch(r"ENQ-\d+", cached[0]["id"])
        assert cached[0]["course"] == "UI/UX Design"
        assert cached[0]["contact"] == "0301-1234567"

        records = await offline_service.reconcile(EntityType.ENQUIRIES)

        assert [r.id for r in records] == [cached[0]["id"], "ENQ-1"]
        assert records[0].name == "Ali Raza"

    @pytest.mark.asyncio
    async def test_two_tabs_create_same_course_offline(self, fake_supabase: FakeSupabase):
        """Test two offline course creates with one name end as a single course."""
        storage = MemoryStorage()
        tab_a = AppContext(storage, origin="tab-a")
        tab_b = AppContext(storage, origin="tab-b")
        service_a = build_service(tab_a, fake_supabase)
        service_b = build_service(tab_b, fake_supabase)

        fake_supabase.offline = True
        await service_a.commit(EntityType.COURSES, CreateIntent(payload={"name": "Data Science", "fees": 1000}))
        await service_b.commit(EntityType.COURSES, CreateIntent(payload={"name": "Data Science", "fees": 1500}))
        assert len(tab_a.cache.get(EntityType.COURSES)) == 2

        fake_supabase.offline = False
        await service_a.sync_pending(EntityType.COURSES)
        await service_b.sync_pending(EntityType.COURSES)

        remote_rows = fake_supabase.tables["courses"]
        assert len(remote_rows) == 1
        accepted_last = remote_rows[0]["fees"]
        assert accepted_last == 1500

        for service in (service_a, service_b):
            records = await service.reconcile(EntityType.COURSES)
            assert [r.name for r in records] == ["Data Science"]
            assert records[0].fees == accepted_last

        tab_a.close()
        tab_b.close()


class TestServiceFactory:
    """Wiring a client instance from settings."""

    @pytest.mark.asyncio
    async def test_factory_wires_all_tiers(
        self, fake_supabase: FakeSupabase, fake_api: FakePublicApi, http_client
    ):
        """Test the factory connects the cache, remote store and API client."""
        settings = Settings(_env_file=None, PUBLIC_API_BASE_URL=API_BASE_URL, OWNER_EMAILS=OWNER_EMAIL)
        fake_supabase.seed("enquiries", [enquiry_row(1, "Remote", "2024-05-01T00:00:00Z")])
        fake_api.collections["/api/public/enquiries"] = [
            {"id": "ENQ-2", "name": "Api", "createdAt": "2024-06-01T00:00:00Z"}
        ]

        service = await create_reconciliation_service(
            settings,
            storage=MemoryStorage(),
            origin="tab-z",
            supabase_client=fake_supabase,
            http_client=http_client,
        )
        records = await service.reconcile(EntityType.ENQUIRIES)

        assert service.context.origin == "tab-z"
        assert service.owner_emails == [OWNER_EMAIL]
        assert [r.id for r in records] == ["ENQ-2", "1"]
        service.context.close()
