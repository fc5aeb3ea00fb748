"""Pydantic schemas for master and volume server JSON responses."""

from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field


class AssignResult(BaseModel):
    """Response model for /dir/assign."""
    model_config = ConfigDict(populate_by_name=True)

    fid: str = ''
    url: str = ''
    public_url: str = Field('', alias='publicUrl')
    count: int = 0
    error: str = ''


class VolumeLocation(BaseModel):
    """One volume server holding a replica."""
    model_config = ConfigDict(populate_by_name=True)

    url: str
    public_url: str = Field('', alias='publicUrl')


class LookupResult(BaseModel):
    """Response model for /dir/lookup."""
    model_config = ConfigDict(populate_by_name=True)

    volume_id: Union[str, int] = Field('', alias='volumeId')
    locations: List[VolumeLocation] = []
    error: str = ''


class UploadResponse(BaseModel):
    """Response model for a volume server write."""
    name: str = ''
    size: int = 0
    error: str = ''


class ErrorBody(BaseModel):
    """
    Decoded error response body.

    ``structured`` is True when the message came from a JSON ``error`` field,
    False when it is the raw response text.
    """
    message: str
    structured: bool = False
