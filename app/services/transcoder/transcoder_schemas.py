from pydantic import BaseModel, Field


class TranscodeResult(BaseModel):
    """Outcome of one TranscodeVideo call.

    RPC-level failures are folded into `success=False` with `error` set, so
    callers handle both failure kinds the same way.
    """

    success: bool
    transcoded_files: list[str] = Field(default_factory=list)
    duration: float | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "TranscodeResult":
        return cls(success=False, error=error)
