from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.v1.contacts.models import Contact


class ContactService:
    """Persistence for contact form messages."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, name: str, email: str, message: str) -> Contact:
        contact = Contact(name=name, email=email, message=message)
        async with self.session_factory() as session:
            session.add(contact)
            await session.commit()
        return contact

    async def resolve(self, contact_id: str) -> Contact | None:
        """Load a contact by id, None if it no longer exists."""
        async with self.session_factory() as session:
            return await session.get(Contact, contact_id)
