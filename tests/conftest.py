import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feeledger.auth.models import Role, User
from feeledger.auth.security import create_access_token, hash_password
from feeledger.core.models import School, Student
from feeledger.db.session import Base, get_db
from feeledger.main import app


SCHEMAS = ("core", "auth", "fees")
PASSWORD = "Accounts@2026"
FEE_PERMISSIONS = {"fees": {"read": True, "create": True, "update": True}}


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """One in-memory SQLite connection per test with the core/auth/fees schemas attached."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _attach_schemas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for schema in SCHEMAS:
            cursor.execute(f"ATTACH DATABASE ':memory:' AS {schema}")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def school(session_factory: async_sessionmaker) -> School:
    async with session_factory() as session:
        school = School(
            school_code="GVS001",
            school_name="Green Valley School",
            school_address="12 MG Road",
            city="Pune",
            state="Maharashtra",
            zip_code="411001",
            school_phone="020-2555-0101",
            school_email="office@greenvalley.edu.in",
        )
        session.add(school)
        await session.commit()
        return school


@pytest.fixture()
async def other_school(session_factory: async_sessionmaker) -> School:
    async with session_factory() as session:
        school = School(school_code="RVS002", school_name="River View School")
        session.add(school)
        await session.commit()
        return school


async def _add_user(session_factory, school: School, email: str, role: str, permissions: Dict) -> User:
    async with session_factory() as session:
        session.add(Role(school_id=school.id, name=role, permissions=permissions))
        user = User(
            school_id=school.id,
            full_name=f"{role.title()} User",
            email=email,
            password_hash=hash_password(PASSWORD),
            role=role,
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture()
async def accountant(session_factory: async_sessionmaker, school: School) -> User:
    return await _add_user(session_factory, school, "accounts@greenvalley.edu.in", "ACCOUNTANT", FEE_PERMISSIONS)


@pytest.fixture()
async def teacher(session_factory: async_sessionmaker, school: School) -> User:
    return await _add_user(
        session_factory, school, "teacher@greenvalley.edu.in", "TEACHER", {"fees": {"read": True}}
    )


def token_headers(user: User, school: School) -> Dict[str, str]:
    token = create_access_token(
        subject={
            "sub": str(user.id),
            "user_id": str(user.id),
            "school_id": str(school.id),
            "school_code": school.school_code,
            "role": user.role,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers(accountant: User, school: School) -> Dict[str, str]:
    return token_headers(accountant, school)


@pytest.fixture()
async def students(session_factory: async_sessionmaker, school: School) -> Dict[str, Student]:
    """Two students in 5-A and one in 6-B for academic year 2030-2031."""
    rows = {
        "aarav": Student(
            school_id=school.id,
            admission_no="GV-101",
            student_name="Aarav Sharma",
            class_name="5",
            section="A",
            roll_number="1",
            academic_year="2030-2031",
        ),
        "diya": Student(
            school_id=school.id,
            admission_no="GV-102",
            student_name="Diya Patel",
            class_name="5",
            section="a",
            roll_number="2",
            academic_year="2030-2031",
        ),
        "kabir": Student(
            school_id=school.id,
            admission_no="GV-201",
            student_name="Kabir Rao",
            class_name="6",
            section="B",
            academic_year="2030-2031",
        ),
    }
    async with session_factory() as session:
        session.add_all(rows.values())
        await session.commit()
    return rows
