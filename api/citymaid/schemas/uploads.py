from pydantic import BaseModel


class UploadOut(BaseModel):
    url: str
    bucket: str
    path: str
    size: int
    content_type: str
