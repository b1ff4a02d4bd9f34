# models.py
import base64
import time
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# ------------------ DATA MODELS -------------------

TextKind = Literal["dialogue", "sign", "caption", "label"]


class CartoonConcept(BaseModel):
    title: str = "Untitled"
    premise: str = "A cartoon concept"
    why_funny: str = "Political commentary"
    location: str = ""


class ConceptSet(BaseModel):
    topic: str
    location: str
    ideas: List[CartoonConcept] = Field(default_factory=list)
    ranking: List[str] = Field(default_factory=list)
    winner: str = ""
    generatedAt: float = Field(default_factory=time.time)


class VisibleText(BaseModel):
    type: TextKind = "sign"
    content: str = ""


class ComicScriptPanel(BaseModel):
    panelNumber: int
    visualDescription: str
    visibleText: List[VisibleText] = Field(default_factory=list)
    characters: List[str] = Field(default_factory=list)
    setting: str = "Scene"
    newsContext: str = ""


class LegacyPanel(BaseModel):
    """Free-text panel from older scripts; only ``description`` is known."""
    description: str = ""


ScriptPanel = Union[ComicScriptPanel, LegacyPanel, str]


class ComicScript(BaseModel):
    panels: List[ScriptPanel] = Field(default_factory=list)
    description: str = ""
    newsContext: str = ""
    generatedAt: float = Field(default_factory=time.time)


class CartoonImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    base64Data: str
    mimeType: str = "image/png"
    generatedAt: float = Field(default_factory=time.time)

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.base64Data)


class ArticleAnalysis(BaseModel):
    summary: str = ""
    humorScore: int = 50


class TextElement(BaseModel):
    panel: int
    text: str
    type: str = "sign"


class NewsSource(BaseModel):
    name: str = "Unknown"
    url: Optional[str] = None


class NewsArticle(BaseModel):
    title: str = ""
    description: Optional[str] = None
    url: str = ""
    source: NewsSource = Field(default_factory=NewsSource)
    publishedAt: str = ""
    content: Optional[str] = None
    image: Optional[str] = None
    author: Optional[str] = None
    # Set by the ranker; rankPosition is the 1-based position in the upstream feed
    authorityScore: Optional[int] = None
    isAuthoritative: Optional[bool] = None
    rankPosition: Optional[int] = None
    # Position of the source's domain in the city whitelist (1 = most authoritative)
    mainstreamRank: Optional[int] = None


class NewsResponse(BaseModel):
    articles: List[NewsArticle] = Field(default_factory=list)
    totalArticles: int = 0
    topic: str = ""
    location: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)
