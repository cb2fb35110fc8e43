"""
Request schemas for the clip API.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ClipRequest(BaseModel):
    """Request body for POST /clip and POST /jobs."""

    tweet_url: Optional[str] = Field(
        default=None,
        alias="tweetUrl",
        description="URL of the post containing the video (x.com links are rewritten to twitter.com)",
    )
    start: Optional[str] = Field(
        default=None,
        description="Optional start offset understood by ffmpeg (e.g. 00:00:05 or 5.5)",
    )
    end: Optional[str] = Field(
        default=None,
        description="Optional end offset understood by ffmpeg (e.g. 00:00:10)",
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "tweetUrl": "https://x.com/a/status/5",
                "start": "00:00:05",
                "end": "00:00:10",
            }
        }
