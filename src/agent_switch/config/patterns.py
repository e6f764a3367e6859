"""Output pattern configuration settings."""

from pydantic import BaseModel, Field


class RateLimitSettings(BaseModel):
    """Per-provider rate-limit regexes. Empty lists use built-in defaults."""

    claude: list[str] = Field(default_factory=list)
    codex: list[str] = Field(default_factory=list)
    gemini: list[str] = Field(default_factory=list)

    def for_tool(self, tool: str) -> list[str]:
        return list(getattr(self, tool, None) or [])


class LoginPatternSet(BaseModel):
    success: list[str] = Field(default_factory=list)
    failure: list[str] = Field(default_factory=list)


class LoginPatternSettings(BaseModel):
    """Per-provider login success and failure regexes."""

    claude: LoginPatternSet = Field(default_factory=LoginPatternSet)
    codex: LoginPatternSet = Field(default_factory=LoginPatternSet)
    gemini: LoginPatternSet = Field(default_factory=LoginPatternSet)

    def for_tool(self, tool: str) -> LoginPatternSet:
        value = getattr(self, tool, None)
        return value if isinstance(value, LoginPatternSet) else LoginPatternSet()
