"""Text normalization and upload validation for contract ingestion.

Handles encoding issues, whitespace normalization, word-per-line PDF output,
and the size/type checks applied before a document is sent anywhere.
"""

import re
import unicodedata
from typing import Dict, List, Optional
from loguru import logger

from copilot.error_handling import InvalidInputError
from copilot.models import ContractFile


# Share of non-blank lines holding one word above which extracted PDF text is
# treated as word-per-line output
SINGLE_WORD_LINE_RATIO = 0.6


class TextNormalizer:
    """Text normalizer for contract documents."""

    REPLACEMENTS = {
        '\u2018': "'",  # Left single quotation mark
        '\u2019': "'",  # Right single quotation mark
        '\u201c': '"',  # Left double quotation mark
        '\u201d': '"',  # Right double quotation mark
        '\u2013': '-',  # En dash
        '\u2014': '--',  # Em dash
        '\u2026': '...',  # Ellipsis
        '\u00a0': ' ',  # Non-breaking space
        '\u00ad': '',  # Soft hyphen
        '\ufeff': '',  # BOM
    }

    def normalize(self, text: str, from_pdf: bool = False) -> str:
        """Run the single normalization pass applied to ingested contract text.

        Args:
            text: Raw text as uploaded, pasted or extracted
            from_pdf: Text came from PDF extraction; only then are
                word-per-line layouts joined into paragraphs

        Returns:
            Cleaned text
        """
        if not text:
            logger.warning("Empty text provided for normalization")
            return ""

        text = self.fix_encoding_issues(text)
        text = self._fix_line_breaks(text)

        if from_pdf and self.is_word_per_line(text):
            logger.debug("Word-per-line layout detected, joining into paragraphs")
            text = self.join_word_lines(text)
        else:
            text = self._normalize_whitespace(text)
            text = re.sub(r'\n{3,}', '\n\n', text)

        text = text.strip()
        logger.debug(f"Text normalized, length: {len(text)}")
        return text

    def fix_encoding_issues(self, text: str) -> str:
        """NFC plus the character replacements. Also applied to anchor text."""
        text = unicodedata.normalize('NFC', text)
        for old, new in self.REPLACEMENTS.items():
            text = text.replace(old, new)
        return text

    def _fix_line_breaks(self, text: str) -> str:
        text = text.replace('\r\n', '\n')
        return text.replace('\r', '\n')

    def _normalize_whitespace(self, text: str) -> str:
        """Collapse runs of spaces inside lines, keeping indentation."""
        text = text.replace('\t', '    ')
        normalized_lines = []

        for line in text.split('\n'):
            leading_space = len(line) - len(line.lstrip(' '))
            content = re.sub(r' +', ' ', line.strip())
            normalized_lines.append(' ' * leading_space + content if content else '')

        return '\n'.join(normalized_lines)

    @staticmethod
    def is_word_per_line(text: str) -> bool:
        """Whether the text looks like PDF output with one word per line."""
        lines = [line.strip() for line in text.split('\n')]
        non_blank = [line for line in lines if line]
        if not non_blank:
            return False
        single_word = sum(1 for line in non_blank if len(line.split()) == 1)
        return single_word / len(non_blank) > SINGLE_WORD_LINE_RATIO

    @staticmethod
    def join_word_lines(text: str) -> str:
        """Join word-per-line text into paragraphs.

        A blank line ends a paragraph. Runs of spaces are collapsed and
        spaces before punctuation removed.
        """
        paragraphs: List[str] = []
        current: List[str] = []
        for raw_line in text.split('\n'):
            line = raw_line.strip()

            if not line:
                if current:
                    paragraphs.append(' '.join(current))
                    current = []
                continue

            current.append(line)

        if current:
            paragraphs.append(' '.join(current))

        joined = '\n\n'.join(paragraphs)
        joined = re.sub(r' +', ' ', joined)
        return re.sub(r' ([.,;:!?])', r'\1', joined)


class FileValidator:
    """Validator for documents about to be uploaded."""

    ANALYSIS_EXTENSIONS = ['.pdf', '.docx', '.txt']
    REDLINE_EXTENSIONS = ['.docx']

    def __init__(self, max_size_mb: int = 10):
        """Initialize file validator.

        Args:
            max_size_mb: Maximum file size in mebibytes (inclusive)
        """
        self.max_size_bytes = max_size_mb * 1024 * 1024

    def check(self, file: ContractFile, allowed_extensions: Optional[List[str]] = None) -> Dict[str, any]:
        """Validate a file without raising.

        Args:
            file: File to check
            allowed_extensions: Extensions accepted for this operation (None accepts any)

        Returns:
            Dictionary with validation results:
                - valid: Boolean indicating if file is valid
                - errors: List of validation errors
                - file_extension: Lower-cased extension including the dot
                - file_size_mb: Size in mebibytes
        """
        errors = []
        file_ext = file.extension

        if allowed_extensions is not None and file_ext not in allowed_extensions:
            errors.append(
                f"Invalid file type '{file_ext or 'none'}'. Allowed types: {', '.join(allowed_extensions)}"
            )

        if file.size == 0:
            errors.append("File is empty")

        if file.size > self.max_size_bytes:
            errors.append(
                f"File size ({file.size / 1024 / 1024:.2f} MB) exceeds "
                f"maximum allowed size ({self.max_size_bytes / 1024 / 1024:.0f} MB)"
            )

        valid = len(errors) == 0
        if not valid:
            logger.warning("File validation failed", filename=file.filename, errors=errors)

        return {
            "valid": valid,
            "errors": errors,
            "file_extension": file_ext,
            "file_size_mb": file.size / 1024 / 1024
        }

    def validate(self, file: ContractFile, allowed_extensions: Optional[List[str]] = None) -> None:
        """Validate a file, raising InvalidInputError on the first problem."""
        result = self.check(file, allowed_extensions)
        if not result["valid"]:
            raise InvalidInputError("; ".join(result["errors"]))


def clean_contract_text(raw_text: str, from_pdf: bool = False) -> str:
    """Normalize ingested contract text."""
    return TextNormalizer().normalize(raw_text, from_pdf=from_pdf)
