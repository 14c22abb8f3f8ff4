from typing import Optional

from pydantic import Field

from finvisor.models.base import StoreModel


class Client(StoreModel):
    id: str = Field(alias="_id")
    name: str
    email: Optional[str] = None
    org_id: Optional[str] = None


class TeamMember(StoreModel):
    id: str = Field(alias="_id")
    name: str
    role: Optional[str] = None
    email: Optional[str] = None
    org_id: Optional[str] = None
