"""Status Data Transfer Objects."""

from api.objects.dto.object import ObjectStatus


class StatusResponse(ObjectStatus):
    download_url: str
