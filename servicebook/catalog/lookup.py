from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.catalog.models import Product


async def get_active_product(session: AsyncSession, product_id: UUID) -> Product | None:
    stmt = select(Product).where(Product.id == product_id, Product.active.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


async def find_active_by_code(session: AsyncSession, code: str) -> Product | None:
    stmt = select(Product).where(Product.code == code, Product.active.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


async def find_active_by_name(session: AsyncSession, fragment: str) -> Product | None:
    """First active product whose name contains `fragment`, ignoring case.

    Ordered by code so that the "first match" is stable between calls.
    """
    fragment = fragment.strip()
    if not fragment:
        return None

    stmt = (
        select(Product)
        .where(
            Product.active.is_(True),
            Product.name.icontains(fragment, autoescape=True),
        )
        .order_by(Product.code)
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def existing_codes(session: AsyncSession) -> set[str]:
    stmt = select(Product.code)
    return set((await session.execute(stmt)).scalars().all())
