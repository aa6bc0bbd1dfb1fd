"""訪問エビデンス (写真・動画) のBlob保存"""
from pathlib import Path

from fleetcare.core.config import settings


class BlobStore:
    """Blobストアのインターフェース。put は取得可能な固定URLを返す"""

    def put(self, path: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def resolve(self, path: str) -> Path:
        """配信用のローカルパス。存在しなければ FileNotFoundError"""
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """ローカルディスク保存 (MEDIA_ROOT 配下、/media ルーターで配信)"""

    def __init__(self, root: str = None, base_url: str = None):
        self.root = Path(root or settings.MEDIA_ROOT)
        self.base_url = (base_url or settings.MEDIA_BASE_URL).rstrip("/")

    def put(self, path: str, data: bytes, content_type: str) -> str:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        # upsert しない (同一パスへの上書き禁止)
        with open(target, "xb") as f:
            f.write(data)
        return f"{self.base_url}/{path}"

    def delete(self, path: str) -> None:
        (self.root / path).unlink(missing_ok=True)

    def resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if root not in target.parents or not target.is_file():
            raise FileNotFoundError(path)
        return target


_blob_store = None


def get_blob_store() -> BlobStore:
    """FastAPI依存関数: Blobストア取得"""
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore()
    return _blob_store
