# storefront/services/user_service.py
from typing import Any, Dict, List, Optional
from ..utils.validators import is_uuid

PROFILE_FIELDS = ("full_name", "phone", "address")

class UserService:
    def __init__(self, db):
        self.db = db

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Profile of an authenticated customer"""
        if not is_uuid(user_id):
            return None
        rows = await self.db.select("profiles", {"id": str(user_id)}, limit=1)
        return rows[0] if rows else None

    @staticmethod
    def missing_fields(profile: Optional[Dict[str, Any]]) -> List[str]:
        """Profile fields that must be filled before checkout"""
        if not profile:
            return list(PROFILE_FIELDS)
        return [f for f in PROFILE_FIELDS if not str(profile.get(f) or "").strip()]
