"""
업로드 파일 저장소

업로드 바이트를 <upload_dir>/<base>_<yyyymmddhhmmss><ext> 에 기록하면서
같은 패스에서 sha-256 을 계산합니다. 기록 도중 실패하면 부분 파일을 삭제합니다.
"""
import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Callable, Optional, Union

from cruise_quotes.services.exceptions import StagingError
from cruise_quotes.settings import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DIR_MODE = 0o755
FILE_MODE = 0o644
MAX_NAME_ATTEMPTS = 5


@dataclass
class StagedFile:
    path: str
    digest: str  # sha-256 hex
    size: int


class FileStorage:
    def __init__(self, upload_dir: Optional[str] = None, clock: Optional[Callable[[], datetime]] = None):
        self.upload_dir = upload_dir or settings.upload_dir
        self.clock = clock or datetime.now

    def _target_name(self, file_name: str, suffix: str = "") -> str:
        # 경로 구분자를 포함한 이름은 기본 이름만 사용
        safe_name = os.path.basename(file_name.replace("\\", "/")) or "upload"
        base, ext = os.path.splitext(safe_name)
        stamp = self.clock().strftime("%Y%m%d%H%M%S")
        return f"{base}_{stamp}{suffix}{ext}"

    def _open_exclusive(self, file_name: str) -> tuple[str, int]:
        """
        O_CREAT|O_WRONLY|O_EXCL 로 한 번에 생성.

        같은 초에 같은 이름이 들어오면 확장자 앞에 임의 접미사를 붙여 다시 시도합니다.
        """
        suffix = ""
        for _ in range(MAX_NAME_ATTEMPTS):
            path = os.path.join(self.upload_dir, self._target_name(file_name, suffix))
            try:
                fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_EXCL | getattr(os, "O_BINARY", 0), FILE_MODE)
                return path, fd
            except FileExistsError:
                suffix = f"_{secrets.token_hex(4)}"
        raise StagingError(f"could not allocate a unique file name for {file_name}")

    def stage(self, file_name: str, stream: Union[BinaryIO, bytes]) -> StagedFile:
        try:
            os.makedirs(self.upload_dir, mode=DIR_MODE, exist_ok=True)
            path, fd = self._open_exclusive(file_name)
        except OSError as e:
            raise StagingError(f"failed to create upload file: {e}") from e

        hasher = hashlib.sha256()
        size = 0
        try:
            with os.fdopen(fd, "wb") as out:
                if isinstance(stream, (bytes, bytearray, memoryview)):
                    chunks = [bytes(stream)]
                else:
                    chunks = iter(lambda: stream.read(CHUNK_SIZE), b"")
                for chunk in chunks:
                    out.write(chunk)
                    hasher.update(chunk)
                    size += len(chunk)
        except Exception as e:
            try:
                os.unlink(path)
            except OSError as cleanup_error:
                logger.error(f"[STORAGE] Failed to remove partial file {path}: {cleanup_error}")
            raise StagingError(f"failed to write upload file: {e}", path=path) from e

        logger.info(f"[STORAGE] Staged {file_name} -> {path} ({size} bytes)")
        return StagedFile(path=path, digest=hasher.hexdigest(), size=size)

    def remove(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"[STORAGE] Failed to remove {path}: {e}")
