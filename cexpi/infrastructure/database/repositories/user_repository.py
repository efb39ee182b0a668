from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cexpi.application.interfaces.user_repository import UserRepository
from cexpi.domain.entities.user import User
from cexpi.infrastructure.database.models import UserModel
from cexpi.infrastructure.database.repositories.errors import translate_errors


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, user: User) -> bool:
        async with translate_errors("user_upsert"):
            async with self._session_factory() as session, session.begin():
                model = await session.get(UserModel, user.user_id)
                if model is None:
                    session.add(
                        UserModel(
                            user_id=user.user_id,
                            display_name=user.display_name,
                            country_code=user.country_code,
                            created_at=user.created_at,
                        )
                    )
                    return True
                model.display_name = user.display_name
                model.country_code = user.country_code
                return False
