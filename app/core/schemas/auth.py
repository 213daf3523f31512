from typing import Optional
from pydantic import BaseModel, Field


# --- Internal Schema for Dependency ---
# This is what get_current_user returns to your routes
class CurrentUser(BaseModel):
    id: str = Field(..., description="Supplier account id")
    email: str
    role: str
    plan: str = Field(..., description="Subscription tier, gates menu quota")
    timezone: Optional[str] = Field(None, description="IANA timezone, unset until the supplier picks one")
    full_name: Optional[str] = None
