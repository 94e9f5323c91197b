import secrets
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loomio.constants.constants import COMMUNITY_CODE_ALPHABET, COMMUNITY_CODE_LENGTH
from loomio.models.community import Community

MAX_ATTEMPTS = 10


def random_community_code() -> str:
    return "".join(secrets.choice(COMMUNITY_CODE_ALPHABET) for _ in range(COMMUNITY_CODE_LENGTH))


async def generate_unique_community_code(db: AsyncSession) -> str:
    """Random six-character join code that no existing community uses."""
    for _ in range(MAX_ATTEMPTS):
        code = random_community_code()
        existing = await db.execute(select(Community.community_id).where(Community.community_code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Could not generate a unique community code")
