from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from finvisor.models.client import Client, TeamMember
from finvisor.utils.safe_query import safe_query


class ClientRepository:
    """Client (accounting firm customer) lookups."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["clients"]

    async def get_client(self, client_id: str, org_id: Optional[str] = None) -> Optional[Client]:
        query = {"_id": client_id}
        if org_id is not None:
            query["org_id"] = org_id
        doc = await safe_query(
            self.collection.find_one(query),
            context="clients.get"
        )
        if doc:
            return Client(**doc)
        return None

    async def get_client_name(self, client_id: str, org_id: Optional[str] = None) -> Optional[str]:
        client = await self.get_client(client_id, org_id)
        return client.name if client else None

    async def list_clients(self, org_id: Optional[str] = None) -> list[Client]:
        query = {"org_id": org_id} if org_id else {}
        cursor = self.collection.find(query).sort("name", 1)
        docs = await safe_query(cursor.to_list(None), context="clients.list")
        return [Client(**doc) for doc in docs]

    async def client_ids_named(self, name: str, org_id: Optional[str] = None) -> list[str]:
        """Ids of clients whose name matches ``name`` (trimmed, case-insensitive)."""
        wanted = name.strip().lower()
        return [c.id for c in await self.list_clients(org_id) if c.name.strip().lower() == wanted]


class TeamMemberRepository:
    """Team member lookups."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["team_members"]

    async def get_member_name(self, member_id: str, org_id: Optional[str] = None) -> Optional[str]:
        query = {"_id": member_id}
        if org_id is not None:
            query["org_id"] = org_id
        doc = await safe_query(
            self.collection.find_one(query, {"name": 1}),
            context="team_members.get"
        )
        return doc.get("name") if doc else None

    async def list_members(self, org_id: Optional[str] = None) -> list[TeamMember]:
        query = {"org_id": org_id} if org_id else {}
        cursor = self.collection.find(query).sort("name", 1)
        docs = await safe_query(cursor.to_list(None), context="team_members.list")
        return [TeamMember(**doc) for doc in docs]
