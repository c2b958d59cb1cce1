from enum import Enum
from pydantic import BaseModel

class EventKind(str, Enum):
    RENAMED = "rename"    # creation or deletion, the watcher can't tell which
    MODIFIED = "change"
    CREATED = "created"
    DELETED = "deleted"

class FsEvent(BaseModel):
    kind: EventKind
    path: str  # relative to the served root

class ByteRange(BaseModel):
    start: int
    end: int   # inclusive
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"
