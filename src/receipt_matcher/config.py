"""
Configuration management.

All configuration keys and defaults live here; no other module should
invent config keys.

Precedence: environment variables > YAML file > dataclass defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ExtractionConfig:
    """Field-extraction settings."""

    # Amounts at or above this are treated as misreads (currency units)
    max_amount: float = 50_000.0
    # Tax lines use a tighter bound and accept 0
    max_tax_amount: float = 10_000.0
    # Letterhead lines scanned for the merchant name
    merchant_header_lines: int = 8
    # PDFs with less text than this have no usable text layer
    min_text_length: int = 10
    # Our own company names; a letterhead showing one of these is not the merchant
    account_holder_names: list[str] = field(default_factory=list)


@dataclass
class MatchingConfig:
    """Match scoring and auto-match settings."""

    # Minimum top-candidate confidence to auto-match (0-100)
    auto_match_threshold: int = 70
    # Candidates below this confidence are dropped
    min_candidate_confidence: int = 10
    # Single-receipt path only considers the most recent N transactions
    single_receipt_pool_limit: int = 100
    # Candidates shown for a single-receipt lookup
    presentation_limit: int = 10
    # Clamp scores to 100 (raw score stays available on the candidate)
    clamp_confidence: bool = True


@dataclass
class OCRConfig:
    """Document/OCR text service (Paperless-ngx compatible API)."""

    base_url: str = ""
    token: str = ""
    timeout_seconds: int = 30
    max_retries: int = 3

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


@dataclass
class Config:
    """Application configuration."""

    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/receipts.db"))

    def validate(self) -> list[str]:
        """Validate configuration consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not 0 <= self.matching.auto_match_threshold <= 100:
            errors.append("matching.auto_match_threshold must be between 0 and 100")
        if not 0 <= self.matching.min_candidate_confidence <= 100:
            errors.append("matching.min_candidate_confidence must be between 0 and 100")
        if self.matching.auto_match_threshold < self.matching.min_candidate_confidence:
            errors.append("auto_match_threshold must be >= min_candidate_confidence")
        if self.matching.single_receipt_pool_limit <= 0:
            errors.append("matching.single_receipt_pool_limit must be positive")

        if self.extraction.max_amount <= 0:
            errors.append("extraction.max_amount must be positive")
        if self.extraction.max_tax_amount <= 0:
            errors.append("extraction.max_tax_amount must be positive")
        if self.extraction.merchant_header_lines <= 0:
            errors.append("extraction.merchant_header_lines must be positive")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - RECEIPT_MATCHER_DB
    - OCR_URL
    - OCR_TOKEN
    - AUTO_MATCH_THRESHOLD

    Raises:
        ConfigValidationError: if the resulting configuration is invalid
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Extraction config
    extraction_data = data.get("extraction", {})
    extraction = ExtractionConfig(
        max_amount=float(extraction_data.get("max_amount", 50_000.0)),
        max_tax_amount=float(extraction_data.get("max_tax_amount", 10_000.0)),
        merchant_header_lines=extraction_data.get("merchant_header_lines", 8),
        min_text_length=extraction_data.get("min_text_length", 10),
        account_holder_names=list(extraction_data.get("account_holder_names") or []),
    )

    # Matching config
    matching_data = data.get("matching", {})
    threshold = matching_data.get("auto_match_threshold", 70)
    threshold_env = os.environ.get("AUTO_MATCH_THRESHOLD", "")
    if threshold_env:
        try:
            threshold = int(threshold_env)
        except ValueError:
            raise ConfigValidationError(
                f"AUTO_MATCH_THRESHOLD must be an integer, got {threshold_env!r}"
            )

    matching = MatchingConfig(
        auto_match_threshold=threshold,
        min_candidate_confidence=matching_data.get("min_candidate_confidence", 10),
        single_receipt_pool_limit=matching_data.get("single_receipt_pool_limit", 100),
        presentation_limit=matching_data.get("presentation_limit", 10),
        clamp_confidence=matching_data.get("clamp_confidence", True),
    )

    # OCR service config
    ocr_data = data.get("ocr", {})
    ocr = OCRConfig(
        base_url=os.environ.get("OCR_URL", ocr_data.get("base_url", "")),
        token=os.environ.get("OCR_TOKEN", ocr_data.get("token", "")),
        timeout_seconds=int(ocr_data.get("timeout_seconds", 30)),
        max_retries=int(ocr_data.get("max_retries", 3)),
    )

    # State DB
    state_db = os.environ.get("RECEIPT_MATCHER_DB", data.get("state_db_path", "data/receipts.db"))

    config = Config(
        extraction=extraction,
        matching=matching,
        ocr=ocr,
        state_db_path=Path(state_db),
    )

    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))

    return config


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Receipt matcher configuration
#
# Environment overrides: RECEIPT_MATCHER_DB, OCR_URL, OCR_TOKEN, AUTO_MATCH_THRESHOLD

extraction:
  max_amount: 50000.0              # Amounts at or above this are ignored
  max_tax_amount: 10000.0          # Bound for tax/VAT/GST lines
  merchant_header_lines: 8         # Letterhead lines scanned for the merchant
  min_text_length: 10              # Shorter PDF text layers count as empty
  account_holder_names: []         # Our own company names (never the merchant)

matching:
  auto_match_threshold: 70         # Auto-match when the best candidate reaches this
  min_candidate_confidence: 10     # Drop weaker candidates
  single_receipt_pool_limit: 100   # Recent transactions considered per new receipt
  presentation_limit: 10           # Candidates shown by find-matches
  clamp_confidence: true           # Cap scores at 100

# Document/OCR text service (Paperless-ngx compatible)
ocr:
  base_url: ""
  token: ""
  timeout_seconds: 30
  max_retries: 3

state_db_path: "data/receipts.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
