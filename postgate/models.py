"""
Post and comment types using Pydantic models.
"""

from pydantic import BaseModel, ConfigDict, Field


class Comment(BaseModel):
    """A comment left on a post."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int
    post_id: int = Field(alias="postId")
    name: str | None = None
    email: str | None = None
    body: str | None = None


class Post(BaseModel):
    """A post, optionally carrying its comments."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int
    user_id: int = Field(alias="userId")
    title: str | None = None
    body: str | None = None
    comments: list[Comment] | None = None

    def with_comments(self, comments: list[Comment]) -> "Post":
        """Return a copy of this post with comments attached."""
        return self.model_copy(update={"comments": list(comments)})


class ProblemDetail(BaseModel):
    """RFC 7807 problem document."""

    type: str | None = None
    title: str
    status: int
    detail: str
    instance: str | None = None
