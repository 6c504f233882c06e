# plates/optimizer.py

import io
import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from .config import (
    ALLOWED_EXTENSIONS,
    JPEG_QUALITY,
    MAX_IMAGE_BYTES,
    MAX_IMAGE_DIMENSION,
    MAX_UPLOAD_SIZE,
    QUALITY_STEPS,
)
from .exceptions import FileSizeError, InvalidImageError, OptimizationSizeExceeded

logger = logging.getLogger(__name__)

FORMAT_EXTENSIONS = {
    'JPEG': '.jpg',
    'MPO': '.jpg',
    'PNG': '.png',
    'WEBP': '.webp',
    'BMP': '.bmp',
    'TIFF': '.tiff',
    'GIF': '.gif',
    'HEIF': '.heic',
}


@dataclass
class OptimizedImage:
    data: bytes
    width: int
    height: int
    format: str
    quality: Optional[int] = None  # None when the input was kept as-is
    resized: bool = False
    size_exceeded: bool = False

    @property
    def extension(self) -> str:
        return FORMAT_EXTENSIONS.get(self.format.upper(), '.jpg')

    @property
    def unchanged(self) -> bool:
        return self.quality is None


def validate_image(file_content: bytes, filename: Optional[str] = None) -> None:
    """
    Yüklenen görselin format ve boyut kontrolü yapar.
    Eğer dosya büyükse veya desteklenmeyen bir format ise uygun hata fırlatır.
    """
    if not file_content:
        raise InvalidImageError("Empty image file")

    if len(file_content) > MAX_UPLOAD_SIZE:
        raise FileSizeError(f"File size exceeds {MAX_UPLOAD_SIZE // (1024*1024)}MB limit")

    if filename:
        file_ext = Path(filename).suffix.lower()
        if file_ext and file_ext not in ALLOWED_EXTENSIONS:
            raise InvalidImageError(f"Unsupported file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    try:
        image = Image.open(io.BytesIO(file_content))
        image.verify()  # Görselin geçerli ve bozuk olmadığını kontrol eder
    except Exception:
        raise InvalidImageError("Invalid or corrupted image file")


class ImageOptimizer:
    """Bounds an image's longest side and its encoded size.

    Quality values are Pillow JPEG qualities (80 == 0.8 compression quality).
    """

    def __init__(
        self,
        max_dimension: int = MAX_IMAGE_DIMENSION,
        max_bytes: int = MAX_IMAGE_BYTES,
        default_quality: int = JPEG_QUALITY,
        quality_steps: Sequence[int] = QUALITY_STEPS,
    ):
        if max_dimension <= 0 or max_bytes <= 0:
            raise ValueError("Optimizer bounds must be positive")
        if not quality_steps:
            raise ValueError("quality_steps must not be empty")
        self.max_dimension = max_dimension
        self.max_bytes = max_bytes
        self.default_quality = default_quality
        self.quality_steps = tuple(sorted(quality_steps, reverse=True))

    @staticmethod
    def open(data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise InvalidImageError(f"Failed to decode image: {e}")
        return image

    @staticmethod
    def encode(image: Image.Image, quality: int) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format='JPEG', quality=quality)
        return buffer.getvalue()

    def scale(self, image: Image.Image) -> Image.Image:
        """
        Çok büyük görselleri en uzun kenar ``max_dimension`` olacak şekilde
        orantılı küçültür. Küçük görseller büyütülmez.
        """
        original_size = image.size
        longest = max(original_size)
        if longest <= self.max_dimension:
            return image
        ratio = self.max_dimension / longest
        new_size = (
            max(1, round(original_size[0] * ratio)),
            max(1, round(original_size[1] * ratio)),
        )
        logger.info(f"Resizing image from {original_size} to {new_size}")
        return image.resize(new_size, Image.Resampling.LANCZOS)

    @staticmethod
    def prepare(image: Image.Image) -> Image.Image:
        """Apply EXIF orientation and flatten to RGB for JPEG output."""
        image = ImageOps.exif_transpose(image)
        if image.mode != 'RGB':
            image = image.convert('RGB')
        return image

    def normalize(self, data: bytes) -> OptimizedImage:
        image = self.open(data)
        source_format = image.format or 'JPEG'
        width, height = image.size

        if max(width, height) <= self.max_dimension:
            probe = self.encode(self.prepare(image), self.default_quality)
            if len(probe) <= self.max_bytes:
                return OptimizedImage(data=data, width=width, height=height, format=source_format)

        working = self.scale(self.prepare(image))
        resized = working.size != (width, height)

        encoded = b''
        for quality in self.quality_steps:
            encoded = self.encode(working, quality)
            logger.debug(f"Encoded at quality {quality}: {len(encoded)} bytes")
            if len(encoded) <= self.max_bytes:
                return OptimizedImage(
                    data=encoded,
                    width=working.width,
                    height=working.height,
                    format='JPEG',
                    quality=quality,
                    resized=resized,
                )

        lowest = self.quality_steps[-1]
        message = (
            f"Image still {len(encoded)} bytes at quality {lowest}, "
            f"above the {self.max_bytes} byte bound"
        )
        logger.warning(message)
        warnings.warn(message, OptimizationSizeExceeded, stacklevel=2)
        return OptimizedImage(
            data=encoded,
            width=working.width,
            height=working.height,
            format='JPEG',
            quality=lowest,
            resized=resized,
            size_exceeded=True,
        )
