"""Download service: handles file download logic."""

from urllib.parse import quote

from api.objects.dto.object import FetchResult
from api.objects.services.registry import ObjectRegistry


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and the exact UTF-8 name."""
    fallback = "".join(
        c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename
    ) or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def download_headers(result: FetchResult) -> dict[str, str]:
    return {
        "Content-Disposition": content_disposition(result.original_name),
        "Content-Length": str(result.size_bytes),
    }


async def get_file_for_download(registry: ObjectRegistry, object_id: str) -> FetchResult:
    """Fetch the object; counts as a download once the bytes are read."""
    return await registry.fetch(object_id)
