from pydantic import BaseModel
from typing import List, Optional


class AuditRequest(BaseModel):
    slugs: List[str] = []
    check_remote: Optional[bool] = None
    regenerate_media: bool = False
    send_alert: bool = False
