import asyncio
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

class LiveSession(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: int
    url_path: str              # page that opened the event stream
    notified: bool = False
    # "reload" pushes a reload frame, None closes the stream silently
    queue: asyncio.Queue = Field(default_factory=asyncio.Queue)

    def push(self, message: Optional[str]) -> None:
        self.queue.put_nowait(message)
