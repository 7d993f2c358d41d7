"""
File Service

Stores weight-ticket photos and PDFs for trip attachments. Files are kept
under <UPLOAD_FOLDER>/trips with a random name; the original name is only
kept as metadata.
"""

from typing import Optional, Dict
import logging
import os
import uuid
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename
from flask import current_app
from .errors import BadRequestError

logger = logging.getLogger(__name__)

TRIP_SUBFOLDER = 'trips'

class FileService:
    """Service class for attachment file storage"""

    ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'pdf'}

    def allowed_file(self, filename: str) -> bool:
        """Check if file extension is allowed."""
        return '.' in filename and \
               filename.rsplit('.', 1)[1].lower() in self.ALLOWED_EXTENSIONS

    def _upload_root(self) -> str:
        folder = current_app.config.get('UPLOAD_FOLDER', 'uploads')
        return os.path.join(current_app.root_path, folder)

    def _max_size(self) -> int:
        return int(current_app.config.get('MAX_UPLOAD_MB', 5)) * 1024 * 1024

    def save_trip_attachment(self, file: Optional[FileStorage]) -> Dict[str, str]:
        """
        Validate and store an uploaded attachment.

        Args:
            file: uploaded file from request.files

        Returns:
            dict: file_url, file_name, file_type to pass to add_attachment

        Raises:
            BadRequestError: missing file, disallowed type or too large
        """
        if not file or not file.filename:
            raise BadRequestError("No file provided")

        if not self.allowed_file(file.filename):
            raise BadRequestError(
                f"File type not allowed. Allowed types: {', '.join(sorted(self.ALLOWED_EXTENSIONS))}"
            )

        # Check file size
        file.stream.seek(0, os.SEEK_END)
        file_size = file.stream.tell()
        file.stream.seek(0)

        max_size = self._max_size()
        if file_size > max_size:
            raise BadRequestError(f"File too large. Maximum size: {max_size // (1024 * 1024)}MB")

        original_filename = secure_filename(file.filename) or 'attachment'
        extension = file.filename.rsplit('.', 1)[1].lower()
        stored_name = f"{uuid.uuid4().hex}.{extension}"

        upload_folder = os.path.join(self._upload_root(), TRIP_SUBFOLDER)
        os.makedirs(upload_folder, exist_ok=True)
        file.save(os.path.join(upload_folder, stored_name))

        logger.info(f"Attachment stored: {stored_name} ({file_size} bytes)")
        return {
            'file_url': f"/uploads/{TRIP_SUBFOLDER}/{stored_name}",
            'file_name': original_filename,
            'file_type': file.mimetype or 'application/octet-stream',
        }

    def delete_trip_attachment(self, file_url: str) -> bool:
        """
        Remove a stored attachment file, e.g. after the database write failed.

        Returns:
            bool: True if a file was removed
        """
        stored_name = os.path.basename(file_url or '')
        if not stored_name:
            return False
        file_path = os.path.join(self._upload_root(), TRIP_SUBFOLDER, stored_name)
        if not os.path.exists(file_path):
            return False
        os.remove(file_path)
        logger.info(f"Attachment file removed: {stored_name}")
        return True
