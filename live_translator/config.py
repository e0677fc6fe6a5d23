"""
Configuration module for Live Translator.

Loads configuration from .env and optional config.yaml using Pydantic models.
"""

import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv
import yaml


class AudioConfig(BaseModel):
    """Audio configuration parameters."""
    capture_sr: int = Field(16000, description="Microphone capture sample rate (Hz)")
    capture_blocksize: int = Field(4096, description="Samples per outbound frame")
    output_sr: int = Field(24000, description="Output device sample rate (Hz)")
    payload_sr: int = Field(24000, description="Default inbound audio sample rate (Hz)")
    payload_channels: int = Field(1, description="Inbound audio channel count")
    pending_frame_limit: int = Field(8, description="Frames buffered before the session opens")
    mic_device: Optional[str] = Field(None, description="Microphone device name")
    output_device: Optional[str] = Field(None, description="Playback device name")

    @field_validator('pending_frame_limit')
    @classmethod
    def validate_pending_limit(cls, v):
        if v < 0:
            raise ValueError("pending_frame_limit must be >= 0")
        return v


class SpeechConfig(BaseModel):
    """Azure Speech translation configuration."""
    speech_key: str = Field(..., description="Azure Speech API key")
    speech_region: str = Field(..., description="Azure Speech region")
    source_language: str = Field("zh-TW", description="Spoken (source) language")
    target_language: str = Field("en", description="Translation (target) language")
    voice_name: Optional[str] = Field("en-US-JennyNeural", description="Voice for synthesized translation")

    @field_validator('speech_key')
    @classmethod
    def validate_key(cls, v):
        if not v or v == "your_key_here":
            raise ValueError("SPEECH_KEY must be set to a valid Azure Speech key")
        return v


class SessionConfig(BaseModel):
    """Streaming session behaviour."""
    barge_in: bool = Field(False, description="Flush playback when new speech starts")
    close_timeout_s: float = Field(5.0, description="Max wait for the inbound worker on teardown")


class LoggingConfig(BaseModel):
    """Logging and diagnostics configuration."""
    log_level: str = Field("INFO", description="Logging level")
    log_file: str = Field("logs/run.log", description="Log file path")
    dump_audio: bool = Field(False, description="Dump decoded inbound audio for debugging")
    dump_path: str = Field("debug_dumps", description="Audio dump directory")


class Config(BaseModel):
    """Main configuration model."""
    audio: AudioConfig = AudioConfig()
    speech: SpeechConfig
    session: SessionConfig = SessionConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(env_file: Optional[str] = None, yaml_file: Optional[str] = None) -> Config:
    """
    Load configuration from environment and optional YAML file.

    Args:
        env_file: Path to .env file (default: .env in project root)
        yaml_file: Path to config.yaml (optional)

    Returns:
        Config: Validated configuration object

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    config_dict = {
        "speech": {
            "speech_key": os.getenv("SPEECH_KEY", ""),
            "speech_region": os.getenv("SPEECH_REGION", "westeurope"),
            "source_language": os.getenv("SOURCE_LANGUAGE", "zh-TW"),
            "target_language": os.getenv("TARGET_LANGUAGE", "en"),
            "voice_name": os.getenv("TTS_VOICE", "en-US-JennyNeural") or None,
        }
    }

    # Override with YAML if provided
    if yaml_file and Path(yaml_file).exists():
        with open(yaml_file, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
            # Deep merge
            for key, value in yaml_config.items():
                if key in config_dict and isinstance(value, dict):
                    config_dict[key].update(value)
                else:
                    config_dict[key] = value

    try:
        config = Config(**config_dict)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def validate_environment() -> list[str]:
    """
    Validate environment prerequisites.

    Returns:
        List of validation errors (empty if all OK)
    """
    errors = []

    if not os.getenv("SPEECH_KEY"):
        errors.append("SPEECH_KEY environment variable is required")

    if not os.getenv("SPEECH_REGION"):
        errors.append("SPEECH_REGION environment variable is required")

    return errors
