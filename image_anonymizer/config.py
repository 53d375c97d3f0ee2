"""Configuration models using Pydantic for validation and type safety."""

import os
from pathlib import Path
from typing import Dict, Tuple, Optional, Any
import yaml
from pydantic import BaseModel, Field, field_validator

from .types import SensitivityCriteria


VALID_METHODS = {"solid", "pixelate"}


class ServiceConfig(BaseModel):
    """Google Cloud Vision and Gemini service settings."""
    gcp_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash-lite"
    vision_endpoint: str = "https://vision.googleapis.com/v1"
    gemini_endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    request_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0)
    max_results: int = Field(default=100, ge=1, le=1000)

    @field_validator('vision_endpoint', 'gemini_endpoint')
    @classmethod
    def validate_endpoint(cls, v):
        """Endpoints must be http(s) URLs without a trailing slash."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError("Endpoint must be an http(s) URL")
        return v.rstrip('/')

    @classmethod
    def from_env(cls, base: Optional['ServiceConfig'] = None) -> 'ServiceConfig':
        """Overlay GCP_API_KEY / GEMINI_MODEL from the environment onto `base`."""
        data = (base or cls()).model_dump()
        api_key = os.getenv("GCP_API_KEY")
        if api_key:
            data['gcp_api_key'] = api_key
        model = os.getenv("GEMINI_MODEL")
        if model:
            data['gemini_model'] = model
        return cls(**data)


class ClassificationConfig(BaseModel):
    """Sensitivity classification settings."""
    api_keys: bool = True
    emails: bool = True
    phone_numbers: bool = True
    credit_cards: bool = True
    personal_names: bool = True
    company_names: bool = True
    use_semantic_classifier: bool = True
    min_text_length: int = Field(default=3, ge=0, le=100)
    api_key_min_length: int = Field(default=20, ge=1, le=500)
    fallback_digit_threshold: int = Field(default=8, ge=0, le=100)
    max_workers: Optional[int] = Field(default=None, ge=1, le=64)

    def criteria(self) -> SensitivityCriteria:
        """Frozen criteria snapshot for one pipeline run."""
        return SensitivityCriteria(
            api_keys=self.api_keys,
            emails=self.emails,
            phone_numbers=self.phone_numbers,
            credit_cards=self.credit_cards,
            personal_names=self.personal_names,
            company_names=self.company_names
        )


class RedactionConfig(BaseModel):
    """Redaction engine configuration."""
    text_method: str = Field(default="solid", pattern="^(solid|pixelate)$")
    face_method: str = Field(default="pixelate", pattern="^(solid|pixelate)$")
    solid_color: Tuple[int, int, int] = Field(default=(0, 0, 0))
    text_alpha: int = Field(default=128, ge=0, le=255)
    face_alpha: int = Field(default=180, ge=0, le=255)
    pixelate_block_size: int = Field(default=16, ge=2, le=256)
    text_max_region_fraction: Optional[float] = Field(default=0.5, gt=0.0, le=1.0)
    face_max_region_fraction: Optional[float] = Field(default=None, gt=0.0, le=1.0)
    skip_first_annotation: bool = True

    @field_validator('solid_color')
    @classmethod
    def validate_solid_color(cls, v):
        """Validate RGB color values."""
        if len(v) != 3 or not all(0 <= c <= 255 for c in v):
            raise ValueError("Color must be RGB tuple with values 0-255")
        return v


class LoggingConfig(BaseModel):
    """Logging and audit configuration."""
    enabled: bool = True
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_file: Optional[str] = None
    audit_redactions: bool = False
    audit_file: Optional[str] = None
    log_text_previews: bool = True
    mask_text: bool = True
    mask_chars_visible: int = Field(default=3, ge=1, le=10)


class Config(BaseModel):
    """Main configuration container."""
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> 'Config':
        """Load configuration from YAML file."""
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        return cls(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create configuration from dictionary."""
        return cls(**data)

    def to_yaml(self, path: Path, include_secrets: bool = False) -> None:
        """Save configuration to YAML file.

        The API key is blanked unless `include_secrets` is set.
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        def convert_tuples(obj):
            if isinstance(obj, dict):
                return {k: convert_tuples(v) for k, v in obj.items()}
            elif isinstance(obj, tuple):
                return list(obj)
            elif isinstance(obj, list):
                return [convert_tuples(item) for item in obj]
            else:
                return obj

        data = convert_tuples(self.model_dump())
        if not include_secrets:
            data['service']['gcp_api_key'] = ""

        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(
                data,
                f,
                default_flow_style=False,
                sort_keys=False,
                indent=2
            )

    def merge_overrides(self, overrides: Dict[str, Any]) -> 'Config':
        """Create new config with overrides applied."""
        config_dict = self.model_dump()

        def deep_merge(base: Dict, override: Dict) -> Dict:
            result = base.copy()
            for key, value in override.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value
            return result

        merged = deep_merge(config_dict, overrides)
        return self.__class__(**merged)


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration with fallback to default."""
    if config_path is None:
        config_path = Path("default.yaml")

    try:
        return Config.from_yaml(config_path)
    except FileNotFoundError:
        return Config()
    except Exception as e:
        raise ValueError(f"Failed to load configuration: {e}")
