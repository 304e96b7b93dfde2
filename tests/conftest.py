import httpx
import pytest
import pytest_asyncio

from institute.db.storage import MemoryStorage
from institute.schemas.auth_schemas import AuthUser
from institute.services.reconciliation.service import ReconciliationService
from institute.utils.global_context import AppContext

from tests.fakes import OWNER_EMAIL, FakeAuth, FakePublicApi, FakeSupabase, build_service


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def context(storage: MemoryStorage) -> AppContext:
    ctx = AppContext(storage, origin="tab-a")
    yield ctx
    ctx.close()


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def fake_api() -> FakePublicApi:
    return FakePublicApi()


@pytest_asyncio.fixture
async def http_client(fake_api: FakePublicApi):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler)) as client:
        yield client


@pytest.fixture
def owner() -> AuthUser:
    return AuthUser(id="owner-1", email=OWNER_EMAIL, role="owner", access_token="owner-token")


@pytest.fixture
def limited_user() -> AuthUser:
    return AuthUser(id="staff-1", email="frontdesk@institute.test", role="limited", access_token="staff-token")


@pytest.fixture
def service(context: AppContext, fake_supabase: FakeSupabase, http_client) -> ReconciliationService:
    return build_service(context, fake_supabase, http_client)


@pytest.fixture
def offline_service(context: AppContext, fake_supabase: FakeSupabase, fake_api: FakePublicApi, http_client) -> ReconciliationService:
    fake_supabase.offline = True
    fake_api.down = True
    return build_service(context, fake_supabase, http_client)


@pytest.fixture
def fake_auth() -> FakeAuth:
    auth = FakeAuth()
    auth.add_user("owner-1", OWNER_EMAIL, token="owner-token", metadata={"role": "owner"})
    auth.add_user("staff-1", "frontdesk@institute.test", token="staff-token", metadata={"role": "limited"})
    return auth
