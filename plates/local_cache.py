# plates/local_cache.py

import logging
import os
import tempfile
import time
import uuid
from pathlib import Path
from typing import Optional, Union

from .config import CACHE_DIR_NAME, DOCUMENTS_DIR
from .exceptions import LocalReadMiss, LocalWriteFailed

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class LocalBlobCache:
    """
    Device-local image files.

    Canonical images (written at save time) live directly under ``root``;
    copies fetched back from the cloud live under ``root/cache`` and are
    disposable.
    """

    def __init__(self, root: Optional[PathLike] = None):
        self.root = Path(root) if root is not None else DOCUMENTS_DIR
        self.cache_dir = self.root / CACHE_DIR_NAME
        self.root.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_filename(ext: str = ".jpg") -> str:
        """``<unix timestamp>_<uuid><ext>``"""
        if not ext.startswith("."):
            ext = f".{ext}"
        return f"{int(time.time())}_{uuid.uuid4()}{ext.lower()}"

    def _write(self, directory: Path, data: bytes, ext: str) -> str:
        target = directory / self.generate_filename(ext)
        tmp_path = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=target.name, suffix=".tmp", dir=str(directory))
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as e:
            logger.error(f"Error saving image to {target}: {e}")
            raise LocalWriteFailed(f"Failed to write image to {target}: {e}") from e
        finally:
            if tmp_path is not None and tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError as e:
                    logger.warning(f"Failed to clean up temp file {tmp_path}: {e}")
        logger.debug(f"Wrote {len(data)} bytes to {target}")
        return str(target)

    def write(self, data: bytes, ext: str = ".jpg") -> str:
        """Persist a canonical image and return its path."""
        return self._write(self.root, data, ext)

    def write_cache(self, data: bytes, ext: str = ".jpg") -> str:
        """Persist a cloud-fetched copy and return its path."""
        return self._write(self.cache_dir, data, ext)

    def read(self, path: Optional[PathLike]) -> bytes:
        if not path:
            raise LocalReadMiss(path)
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise LocalReadMiss(path) from e

    def exists(self, path: Optional[PathLike]) -> bool:
        return bool(path) and Path(path).is_file()

    def delete(self, path: Optional[PathLike]) -> bool:
        """Remove a file. A missing file counts as already deleted."""
        if not path:
            return False
        try:
            Path(path).unlink()
            logger.info(f"Deleted local image: {path}")
            return True
        except FileNotFoundError:
            logger.debug(f"Local image already gone: {path}")
            return False
        except OSError as e:
            logger.error(f"Error deleting image {path}: {e}")
            return False

    def size(self, path: Optional[PathLike]) -> int:
        if not path:
            return 0
        try:
            return Path(path).stat().st_size
        except OSError:
            return 0
