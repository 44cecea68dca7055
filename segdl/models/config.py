"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_13_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/69.0.3497.81 Safari/537.36"
)


class DownloadConfig(BaseModel):
    """A validated configuration model for the application."""

    # Output
    output_path: str = ""
    output_name: str = ""
    file_name_length: int = 0

    # Stream selection
    stream: str = ""
    audio_only: bool = False
    caption: bool = False

    # Request collaborator
    refer: str = ""
    cookie: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: int = 900
    silent: bool = False

    # Segment engine
    multi_thread: bool = True
    thread_number: int = 4
    retry_times: int = 3
    retry_delay: float = 1.0
    chunk_size_mb: int = 0
    max_workers: int = 4

    # Remote delegate (aria2 JSON-RPC)
    use_aria2_rpc: bool = False
    aria2_token: str = ""
    aria2_method: str = "http"
    aria2_addr: str = "localhost:6800"
    aria2_rpc_id: str = "segdl"

    # Logging
    json_log_dir: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)
    source_urls: list[str] = Field(default_factory=list, repr=False)
    playlist: bool = Field(False, repr=False)
    items: str = Field("", repr=False)
    item_start: int = Field(1, repr=False)
    item_end: int = Field(0, repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("thread_number")
    @classmethod
    def validate_threads(cls, v: int) -> int:
        """Ensures a reasonable number of segments per part."""
        if v < 1 or v > 64:
            raise ValueError("Thread number must be between 1 and 64.")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @field_validator("retry_times")
    @classmethod
    def validate_retry_times(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Retry times must be at least 1 (a single attempt).")
        return v

    @field_validator("retry_delay")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry delay cannot be negative.")
        return v

    @field_validator("chunk_size_mb", "file_name_length")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value cannot be negative (use 0 to disable).")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Request timeout must be a positive number of seconds.")
        return v

    @field_validator("aria2_method")
    @classmethod
    def validate_aria2_method(cls, v: str) -> str:
        v = v.lower()
        if v not in ("http", "https"):
            raise ValueError("aria2_method must be 'http' or 'https'.")
        return v

    @model_validator(mode="after")
    def validate_delegate_config(self) -> "DownloadConfig":
        """Validates that the remote delegate is reachable in principle."""
        if self.use_aria2_rpc and not self.aria2_addr:
            raise ValueError("aria2_addr is required when use_aria2_rpc is enabled.")
        return self

    @model_validator(mode="after")
    def validate_option_conflicts(self) -> "DownloadConfig":
        """Checks for conflicting download options."""
        if self.audio_only and self.stream:
            raise ValueError("Cannot use --audio-only and --stream simultaneously.")
        return self

    @property
    def chunk_size(self) -> int:
        """Chunk size in bytes, 0 meaning the whole remaining range."""
        return self.chunk_size_mb * 1024 * 1024

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {
            "config_path",
            "source_urls",
            "playlist",
            "items",
            "item_start",
            "item_end",
        }
        return {key for key in cls.model_fields if key not in internal_fields}
