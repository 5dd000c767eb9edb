import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from velocity_guard.models import (
    Affiliate,
    AffiliateStatus,
    AuditLog,
    Base,
    ReviewFlag,
    ReviewFlagStatus,
)
from velocity_guard.services.categories import CategoryResolutionError, DatabaseCategoryResolver
from velocity_guard.services.dispatch import DatabaseActionDispatcher


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def Session(engine):
    Session = async_sessionmaker(engine, expire_on_commit=False)
    async with Session() as session:
        session.add(Affiliate(id="aff-1", name="Ana", category="profissional"))
        session.add(Affiliate(id="aff-2", name="Bruno", category=None))
        await session.commit()
    return Session


@pytest.mark.asyncio
async def test_resolver_reads_affiliate_category(Session):
    resolver = DatabaseCategoryResolver(Session)

    assert await resolver.resolve("aff-1") == "profissional"
    assert await resolver.resolve("aff-2") is None
    assert await resolver.resolve("missing") is None


@pytest.mark.asyncio
async def test_resolver_reports_unavailable_database():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    resolver = DatabaseCategoryResolver(async_sessionmaker(engine))

    with pytest.raises(CategoryResolutionError) as exc_info:
        await resolver.resolve("aff-1")

    assert exc_info.value.code == "RESOLVER_UNAVAILABLE"
    await engine.dispose()


@pytest.mark.asyncio
async def test_block_suspends_affiliate_and_audits(Session):
    await DatabaseActionDispatcher(Session).block("aff-1", "velocity limit exceeded")

    async with Session() as session:
        affiliate = await session.get(Affiliate, "aff-1")
        audit = (await session.execute(select(AuditLog))).scalar_one()

    assert affiliate.status == AffiliateStatus.SUSPENDED
    assert affiliate.status_reason == "velocity limit exceeded"
    assert audit.action == "block"
    assert audit.before == {"status": "active"}
    assert audit.after["status"] == "suspended"


@pytest.mark.asyncio
async def test_block_of_unknown_affiliate_is_logged_not_raised(Session, caplog):
    await DatabaseActionDispatcher(Session).block("missing", "velocity limit exceeded")

    async with Session() as session:
        audits = (await session.execute(select(AuditLog))).scalars().all()

    assert audits == []
    assert "Automatic block failed for affiliate missing" in caplog.text


@pytest.mark.asyncio
async def test_flag_opens_review(Session):
    await DatabaseActionDispatcher(Session).flag("aff-1", "high velocity detected")

    async with Session() as session:
        flag = (await session.execute(select(ReviewFlag))).scalar_one()
        audit = (await session.execute(select(AuditLog))).scalar_one()
        affiliate = await session.get(Affiliate, "aff-1")

    assert flag.affiliate_id == "aff-1"
    assert flag.status == ReviewFlagStatus.OPEN
    assert audit.entity_id == str(flag.id)
    assert affiliate.status == AffiliateStatus.ACTIVE


@pytest.mark.asyncio
async def test_dispatch_with_broken_database_is_swallowed(caplog):
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    dispatcher = DatabaseActionDispatcher(async_sessionmaker(engine))

    await dispatcher.flag("aff-1", "high velocity detected")
    await dispatcher.block("aff-1", "velocity limit exceeded")

    assert "Review flag failed" in caplog.text
    await engine.dispose()
