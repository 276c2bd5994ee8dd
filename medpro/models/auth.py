"""Authenticated practitioner model."""

from typing import Optional

from medpro.models.assistant import ApiModel


class User(ApiModel):
    id: str = ""
    email: str
    username: str = ""
    name: str = ""
    role: str = "practitioner"
    organization: Optional[str] = None
