"""Pydantic schemas for requests.

We define only the request bodies for admin actions here.  Responses are
returned as plain dicts directly from the service layer.
"""
from typing import List, Union

from pydantic import BaseModel, Field


class UploadRequest(BaseModel):
    # pasted text, one enrollment number per line, or an explicit list
    enrollment_list: Union[str, List[str]]


class StudentsToShowRequest(BaseModel):
    students_to_show: int = Field(gt=0)
