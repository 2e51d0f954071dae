from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

class InputKind(str, Enum):
    YOUTUBE = "youtube"
    VIDEO = "video"
    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"
    TEXT = "text"

class DetailLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    DETAILED = "detailed"

class UploadedFile(BaseModel):
    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        name = self.filename or ""
        return name.rsplit(".", 1)[-1].lower() if "." in name else ""

class InputPayload(BaseModel):
    youtube_url: str | None = None
    pasted_text: str | None = None
    file: UploadedFile | None = None

class NormalizedInput(BaseModel):
    raw_text: str
    kind: InputKind
    source_length: int

class Chunk(BaseModel):
    index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    text: str
    start: int
    end: int

class GeneratedNote(BaseModel):
    text: str
    input_kind: InputKind
    chunk_count: int = 1

class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class ResolvedTranscript(BaseModel):
    text: str
    strategy: str
    video_id: str
