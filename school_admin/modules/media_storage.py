"""
Media Storage Module - School Administration System

Stores uploaded images (student and teacher photos, course flyers) on
local disk under the upload folder. Images are checked with Pillow and
scaled down to fit the configured maximum dimension.
"""

import io
import logging
import os
import uuid
from typing import Dict, Any, Iterable, Optional

from PIL import Image, UnidentifiedImageError

from school_admin.utils.exceptions import ValidationError

URL_PREFIX = '/uploads'

# Pillow format name -> stored file extension
IMAGE_FORMATS = {'JPEG': 'jpg', 'PNG': 'png'}


class MediaStorage:
    """Local image storage with validation and resizing."""

    def __init__(self, upload_folder: str, folders: Iterable[str],
                 max_size: int = 5 * 1024 * 1024,
                 allowed_types: Optional[Dict[str, str]] = None,
                 max_dimension: int = 800, jpeg_quality: int = 85):
        """
        Args:
            upload_folder (str): Root directory for stored files
            folders (Iterable[str]): Sub-folders callers may store into
            max_size (int): Maximum upload size in bytes
            allowed_types (Dict[str, str]): Accepted MIME types
            max_dimension (int): Longest side after resizing
            jpeg_quality (int): Quality used when saving JPEG files
        """
        self.upload_folder = str(upload_folder)
        self.folders = set(folders)
        self.max_size = max_size
        self.allowed_types = allowed_types or {'image/jpeg': 'jpg', 'image/png': 'png'}
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.logger = logging.getLogger(__name__)

    def save_image(self, file_storage, folder: str) -> Dict[str, Any]:
        """
        Validate, resize and store an uploaded image.

        Args:
            file_storage: werkzeug FileStorage from request.files
            folder (str): Target sub-folder

        Returns:
            Dict[str, Any]: {'url', 'filename', 'width', 'height', 'size'}

        Raises:
            ValidationError: If the folder, type, size or content is invalid
        """
        if folder not in self.folders:
            raise ValidationError(f"Invalid folder. Allowed: {', '.join(sorted(self.folders))}")
        if file_storage is None or not file_storage.filename:
            raise ValidationError('No file provided')
        if file_storage.mimetype not in self.allowed_types:
            raise ValidationError('Only JPEG and PNG images are allowed')

        data = file_storage.read()
        if not data:
            raise ValidationError('Uploaded file is empty')
        if len(data) > self.max_size:
            raise ValidationError(f'File is too large (max {self.max_size // (1024 * 1024)} MB)')

        try:
            # verify() leaves the image unusable, so it is opened twice
            Image.open(io.BytesIO(data)).verify()
            img = Image.open(io.BytesIO(data))
            image_format = img.format
            if image_format not in IMAGE_FORMATS:
                raise ValidationError('Only JPEG and PNG images are allowed')
            img.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)
        except Image.DecompressionBombError as e:
            self.logger.warning(f"Rejected oversized image upload: {str(e)}")
            raise ValidationError('Image dimensions are too large')
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            self.logger.warning(f"Rejected invalid image upload: {str(e)}")
            raise ValidationError('File is not a valid image')

        extension = IMAGE_FORMATS[image_format]

        output = io.BytesIO()
        if extension == 'jpg':
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')
            img.save(output, format='JPEG', quality=self.jpeg_quality, optimize=True)
        else:
            img.save(output, format='PNG', optimize=True)

        filename = f"{uuid.uuid4().hex}.{extension}"
        directory = os.path.join(self.upload_folder, folder)
        os.makedirs(directory, exist_ok=True)
        with open(os.path.join(directory, filename), 'wb') as handle:
            handle.write(output.getvalue())

        self.logger.info(f"Image stored: {folder}/{filename} ({img.width}x{img.height})")
        return {
            'url': f"{URL_PREFIX}/{folder}/{filename}",
            'filename': filename,
            'width': img.width,
            'height': img.height,
            'size': output.tell(),
        }

    def delete(self, url: Optional[str]) -> bool:
        """
        Remove a stored file by its public URL.

        Returns:
            bool: True if a file was removed
        """
        path = self.path_for(url)
        if not path or not os.path.exists(path):
            return False

        os.remove(path)
        self.logger.info(f"Image deleted: {url}")
        return True

    def path_for(self, url: Optional[str]) -> Optional[str]:
        """Map a public URL back to its file path; None for foreign URLs."""
        if not url or not url.startswith(URL_PREFIX + '/'):
            return None

        parts = url[len(URL_PREFIX) + 1:].split('/')
        if len(parts) != 2:
            return None
        folder, filename = parts
        if folder not in self.folders or not filename or filename.startswith('.') or '\\' in filename:
            return None
        return os.path.join(self.upload_folder, folder, filename)
