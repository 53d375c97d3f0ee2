"""Audit logging system with privacy protection for redaction events."""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, TextIO, Any

from .types import ClassificationOutcome, RedactionRect
from .config import LoggingConfig


class PrivacyPreservingFormatter(logging.Formatter):
    """Formatter that masks API keys in request URLs (httpx logs them at INFO)."""

    _KEY_PARAM = re.compile(r'([?&]key=)([^&\s"\']+)')

    def __init__(self, mask_chars_visible: int = 3):
        super().__init__('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        self.mask_chars_visible = mask_chars_visible

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        return self._KEY_PARAM.sub(
            lambda m: m.group(1) + mask_sensitive_text(m.group(2), self.mask_chars_visible),
            formatted
        )


class RedactionAuditor:
    """Appends one JSON line per redacted region to an audit file."""

    def __init__(self, config: LoggingConfig):
        """Initialize the redaction auditor.

        Args:
            config: Logging configuration
        """
        self.config = config
        self.audit_file: Optional[TextIO] = None
        self._setup_audit_file()

    def _setup_audit_file(self) -> None:
        """Set up the audit file for JSONL logging."""
        if not self.config.audit_redactions or not self.config.audit_file:
            return

        try:
            audit_path = Path(self.config.audit_file)
            audit_path.parent.mkdir(parents=True, exist_ok=True)

            # Append mode preserves earlier runs
            self.audit_file = open(audit_path, 'a', encoding='utf-8')
        except OSError as e:
            logging.error(f"Failed to open audit file {self.config.audit_file}: {e}")
            self.audit_file = None

    @property
    def enabled(self) -> bool:
        return self.audit_file is not None

    def _preview(self, text: Optional[str]) -> Optional[str]:
        if not text or not self.config.log_text_previews:
            return None
        if not self.config.mask_text:
            return text
        return mask_sensitive_text(text, self.config.mask_chars_visible)

    def _write(self, event_data: Dict[str, Any]) -> None:
        if self.audit_file is None:
            return
        try:
            self.audit_file.write(json.dumps(event_data, separators=(',', ':')) + '\n')
            self.audit_file.flush()
        except (OSError, ValueError) as e:
            logging.error(f"Failed to write audit event: {e}")

    def log_redaction(
        self,
        image_name: str,
        kind: str,
        rect: RedactionRect,
        outcome: Optional[ClassificationOutcome] = None,
        text: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Record one redacted region.

        Args:
            image_name: Name of the image being processed
            kind: "text" or "face"
            rect: Rectangle that was painted over
            outcome: Classification outcome for text regions
            text: Detected text, masked before it is written
            timestamp: Event timestamp (defaults to current time)
        """
        if not self.enabled:
            return

        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        event_data: Dict[str, Any] = {
            'timestamp': timestamp.isoformat(),
            'event_type': 'redaction',
            'image': image_name,
            'kind': kind,
            'rect': rect.to_dict(),
        }
        if outcome is not None:
            event_data['source'] = outcome.source.value
        preview = self._preview(text)
        if preview is not None:
            event_data['text_preview'] = preview

        self._write(event_data)

    def log_summary(
        self,
        image_name: str,
        stats: Dict[str, int],
        timestamp: Optional[datetime] = None
    ) -> None:
        """Record per-image redaction counts."""
        if not self.enabled:
            return

        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        self._write({
            'timestamp': timestamp.isoformat(),
            'event_type': 'summary',
            'image': image_name,
            'stats': stats,
        })

    def close(self) -> None:
        """Close the audit file."""
        if self.audit_file:
            try:
                self.audit_file.close()
            except OSError as e:
                logging.error(f"Error closing audit file: {e}")
            finally:
                self.audit_file = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def setup_logging(
    config: Optional[LoggingConfig] = None,
    level: int = logging.INFO,
    no_log_text: bool = False
) -> Optional[RedactionAuditor]:
    """Set up logging system with privacy protection.

    Args:
        config: Logging configuration (optional, for full setup)
        level: Logging level (used when config is None)
        no_log_text: If True, disable text previews in the audit log

    Returns:
        Configured RedactionAuditor instance or None if config not provided
    """
    root_logger = logging.getLogger()

    if config is None:
        root_logger.setLevel(level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(PrivacyPreservingFormatter())
        root_logger.addHandler(console_handler)

        return None

    if no_log_text:
        config = config.model_copy()
        config.log_text_previews = False

    log_level = getattr(logging, config.log_level.upper())
    formatter = PrivacyPreservingFormatter(mask_chars_visible=config.mask_chars_visible)

    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if config.enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)
    else:
        root_logger.addHandler(logging.NullHandler())

    if config.log_file:
        try:
            log_path = Path(config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.error(f"Failed to set up file logging: {e}")

    return RedactionAuditor(config)


def mask_sensitive_text(text: str, chars_visible: int = 3) -> str:
    """Utility function to mask sensitive text for privacy protection.

    Args:
        text: Original text to mask
        chars_visible: Number of characters to show at start and end

    Returns:
        Masked text showing only first/last characters
    """
    if len(text) == 0:
        return ''

    if len(text) <= 2:
        if len(text) == 1:
            return '*'
        return text[0] + '*'

    if len(text) <= 2 * chars_visible:
        return text[0] + '*' * (len(text) - 2) + text[-1]

    masked_length = len(text) - 2 * chars_visible
    return (
        text[:chars_visible] +
        '*' * masked_length +
        text[-chars_visible:]
    )
