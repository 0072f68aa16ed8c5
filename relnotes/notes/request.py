"""Generation request: what a stream opener needs to start a note stream."""

from pydantic import BaseModel, Field, field_validator


class GenerationRequest(BaseModel):
    """A request to generate notes for one item.

    Attributes:
        item_id: External item identifier (e.g. a pull request number).
        diff: Raw unified diff text.
        description: Free-text description of the change (PR title/body).
        owner: Optional repository owner, for enrichment and prompt context.
        repo: Optional repository name.
    """

    item_id: str = Field(..., min_length=1)
    diff: str
    description: str = ""
    owner: str | None = None
    repo: str | None = None

    @field_validator("item_id", mode="before")
    @classmethod
    def _coerce_item_id(cls, value: object) -> object:
        # PR numbers arrive as ints from GitHub payloads
        return str(value) if isinstance(value, int) else value
