from typing import Optional

from pydantic import BaseModel


class AchievementProgress(BaseModel):
    current: int
    next_milestone: Optional[int] = None
    next_achievement_id: Optional[str] = None
    progress: int = 0
