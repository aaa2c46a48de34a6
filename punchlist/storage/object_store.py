from pathlib import Path
from typing import Optional, Protocol


class ObjectStore(Protocol):
    async def put(self, data: bytes, path: str, content_type: Optional[str] = None) -> str: ...

    async def delete(self, url: str) -> None: ...

    async def read(self, url: str) -> bytes: ...


class LocalObjectStore:
    """Blobs under a local directory, addressed by URLs below url_prefix."""

    def __init__(self, root_dir: str, url_prefix: str = "/data"):
        self.root = Path(root_dir).resolve()
        self.url_prefix = url_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def url_for(self, path: str) -> str:
        return f"{self.url_prefix}/{path.lstrip('/')}"

    def path_for(self, url: str) -> Path:
        prefix = self.url_prefix + "/"
        if not url.startswith(prefix):
            raise ValueError(f"not a stored object url: {url}")

        path = (self.root / url[len(prefix):]).resolve()
        if self.root not in path.parents:
            raise ValueError(f"object url escapes the store: {url}")
        return path

    async def put(self, data: bytes, path: str, content_type: Optional[str] = None) -> str:
        url = self.url_for(path)
        target = self.path_for(url)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return url

    async def delete(self, url: str) -> None:
        self.path_for(url).unlink()

    async def read(self, url: str) -> bytes:
        return self.path_for(url).read_bytes()
