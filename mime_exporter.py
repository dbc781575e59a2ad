#!/usr/bin/env python3
"""
MIME Exporter

Walks every page of the inbox and saves each message's raw MIME content as an
.eml file. Output is spread over numbered folders (MIME_Messages_Folder1,
MIME_Messages_Folder2, ...) holding at most ``messages_per_folder`` files each.
"""

import datetime
import os
from dataclasses import dataclass
from typing import Optional

from exceptions import FilesystemError, NotFoundError, TransportError
from filename_sanitizer import build_filename, sanitize
from graph_client import EXPORT_SELECT_FIELDS, GraphMailClient, GraphMessage, MessagePage


FOLDER_PREFIX = "MIME_Messages_Folder"
MESSAGES_PER_FOLDER = 100


def format_duration(duration: datetime.timedelta) -> str:
    """Format a duration as e.g. 1h 2m 3s, 4m 5s or 6s"""
    total_seconds = int(duration.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    elif minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


@dataclass
class ExportStats:
    """Statistics for a MIME export run with error tracking and timing"""
    total_listed: int = 0
    saved: int = 0
    skipped_not_found: int = 0
    pages_fetched: int = 0
    bytes_written: int = 0
    folders_used: int = 0
    errors: int = 0

    transport_errors: int = 0
    filesystem_errors: int = 0

    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None

    def start_processing(self) -> None:
        """Mark the start of processing"""
        self.start_time = datetime.datetime.now()

    def end_processing(self) -> None:
        """Mark the end of processing"""
        self.end_time = datetime.datetime.now()

    def get_processing_duration(self) -> Optional[str]:
        """Get formatted processing duration"""
        if self.start_time and self.end_time:
            return format_duration(self.end_time - self.start_time)
        return None

    def increment_error_type(self, error_type: str) -> None:
        """Increment specific error type and total errors"""
        self.errors += 1

        if error_type == 'transport':
            self.transport_errors += 1
        elif error_type == 'filesystem':
            self.filesystem_errors += 1

    def get_summary(self) -> str:
        """Get a formatted summary of export statistics"""
        duration_str = self.get_processing_duration()
        duration_line = f"\n  Processing time: {duration_str}" if duration_str else ""

        summary = (f"Export Summary:\n"
                   f"  Pages fetched: {self.pages_fetched}\n"
                   f"  Messages listed: {self.total_listed}\n"
                   f"  Saved: {self.saved}\n"
                   f"  Skipped (not found): {self.skipped_not_found}\n"
                   f"  Bytes written: {self.bytes_written}\n"
                   f"  Folders used: {self.folders_used}\n"
                   f"  Total errors: {self.errors}{duration_line}")

        if self.errors > 0:
            error_details = []
            if self.transport_errors > 0:
                error_details.append(f"transport: {self.transport_errors}")
            if self.filesystem_errors > 0:
                error_details.append(f"filesystem: {self.filesystem_errors}")
            if error_details:
                summary += f"\n  Error breakdown: {', '.join(error_details)}"

        return summary

    def get_quick_stats(self) -> str:
        """Get a quick one-line summary for progress logging"""
        return f"listed: {self.total_listed}, saved: {self.saved}, errors: {self.errors}"


@dataclass
class ExportCursor:
    """Folder sharding state for one export run"""
    folder_number: int = 1
    folder_count: int = 0
    page: Optional[MessagePage] = None
    messages_per_folder: int = MESSAGES_PER_FOLDER

    def claim_slot(self) -> int:
        """Roll over to the next folder if the current one is full; return the folder number"""
        if self.folder_count >= self.messages_per_folder:
            self.folder_count = 0
            self.folder_number += 1
        return self.folder_number

    def record_message(self) -> None:
        self.folder_count += 1


class MimeExporter:
    """Saves every message of a mail folder as MIME (.eml) files"""

    def __init__(self, client: GraphMailClient, output_dir: str = ".",
                 messages_per_folder: int = MESSAGES_PER_FOLDER, progress_interval: int = 100):
        self.client = client
        self.output_dir = output_dir
        self.messages_per_folder = messages_per_folder
        self.progress_interval = progress_interval
        self.stats = ExportStats()

    def folder_path(self, folder_number: int) -> str:
        return os.path.join(self.output_dir, f"{FOLDER_PREFIX}{folder_number}")

    def export_inbox(self, folder: str = "inbox") -> ExportStats:
        """
        Export every message in ``folder`` page by page.

        A failure to fetch a page propagates and ends the run; failures on a
        single message are logged and the run continues.

        Returns:
            ExportStats: Final export statistics
        """
        print(f"Starting MIME export of '{folder}'...")
        self.stats = ExportStats()
        self.stats.start_processing()

        cursor = ExportCursor(messages_per_folder=self.messages_per_folder)
        try:
            first_page = self.client.get_messages_page(folder=folder, select_fields=EXPORT_SELECT_FIELDS)

            for page in self.client.iter_pages(first_page):
                cursor.page = page
                self.stats.pages_fetched += 1
                for message in cursor.page.messages:
                    folder_number = cursor.claim_slot()
                    self.stats.folders_used = folder_number
                    self.stats.total_listed += 1

                    self._save_message(message, folder_number)
                    cursor.record_message()

                    if self.stats.total_listed % self.progress_interval == 0:
                        print(f"Progress: {self.stats.get_quick_stats()}")
        finally:
            self.stats.end_processing()

        print(f"✅ Export finished: {self.stats.get_quick_stats()}")
        return self.stats

    def _save_message(self, message: GraphMessage, folder_number: int) -> bool:
        """
        Save one message; logs and returns False instead of raising on
        not-found, transport and filesystem failures.
        """
        date_part, subject_part = sanitize(message.subject, message.received_datetime)
        folder_path = self.folder_path(folder_number)
        file_path = os.path.join(folder_path, build_filename(date_part, subject_part))

        try:
            self._write_message(message.id, folder_path, file_path)
        except NotFoundError as e:
            print(f"⚠️ Skipping message {message.id}: {e}")
            self.stats.skipped_not_found += 1
            return False
        except TransportError as e:
            print(f"⚠️ Warning: Failed to download message {message.id}: {e}")
            self.stats.increment_error_type('transport')
            return False
        except FilesystemError as e:
            print(f"⚠️ Warning: Failed to save message {message.id}: {e}")
            self.stats.increment_error_type('filesystem')
            return False

        self.stats.saved += 1
        return True

    def _write_message(self, message_id: str, folder_path: str, file_path: str) -> int:
        """Stream a message's MIME content into file_path; returns bytes written"""
        try:
            os.makedirs(folder_path, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create directory {folder_path}: {e}") from e

        with self.client.get_message_content_stream(message_id) as stream:
            try:
                with open(file_path, 'wb') as f:
                    for chunk in stream.iter_chunks():
                        f.write(chunk)
            except TransportError:
                self._remove_partial(file_path)
                raise
            except (OSError, ValueError) as e:
                # ValueError: path with an embedded null byte
                self._remove_partial(file_path)
                raise FilesystemError(f"Failed to write {file_path}: {e}") from e

        self.stats.bytes_written += stream.bytes_read
        return stream.bytes_read

    def _remove_partial(self, file_path: str) -> None:
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
        except OSError as e:
            print(f"⚠️ Warning: Could not remove partial file {file_path}: {e}")
