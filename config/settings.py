#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== Database ==========
    database_dir: Path = BASE_DIR / "data"
    store_db_name: str = "bestpub"      # <database_dir>/<name>.db (node store)
    workflow_db_name: str = "workflow"  # <database_dir>/<name>.db (process instances)

    # ========== Chapter folders ==========
    chapter_folder_prefix: str = "chapter-"
    # 0 = plain decimal ("chapter-3"), N = zero-padded to N digits ("chapter-003")
    chapter_number_padding: int = 0

    # ========== Concurrency ==========
    lock_timeout_seconds: float = 30.0
    # Transient store errors ("database is locked") are retried per call
    store_retry_attempts: int = 3
    store_retry_wait_seconds: float = 0.2

    # ========== Extension points ==========
    # Copy the book info metadata bundle onto every new chapter folder
    propagate_book_metadata: bool = True
    # Push "metadataComplete" into the book's workflow instance on insert/delete
    sync_workflow_metadata_flag: bool = True

    # ========== EPub packaging ==========
    artifact_dir: Path = BASE_DIR / "data" / "artifacts"
    epub_language: str = "en"
    epub_publisher: str = "Best Publishing"

    # ========== API ==========
    rate_limit_enabled: bool = True
    rate_limit: str = "60/minute"
    publish_rate_limit: str = "10/minute"
    cors_origins: str = ""  # Empty = use default dev origins

    # ========== Logging ==========
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logs_dir: Optional[Path] = None  # None = console only

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Create directories
        for dir_path in [self.database_dir, self.artifact_dir, self.logs_dir]:
            if dir_path is not None:
                dir_path.mkdir(exist_ok=True, parents=True)

        if self.chapter_number_padding < 0:
            raise ValueError("CHAPTER_NUMBER_PADDING must be >= 0")
        if not self.chapter_folder_prefix:
            raise ValueError("CHAPTER_FOLDER_PREFIX must not be empty")

    @property
    def store_db_path(self) -> Path:
        return self.database_dir / f"{self.store_db_name}.db"

    def get_cors_origins(self) -> list:
        """Get CORS origins as a list. Falls back to dev defaults if empty."""
        if self.cors_origins:
            return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        # Dev defaults
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:8000",
            "http://127.0.0.1:8000",
        ]

    def print_config(self):
        """Print configuration summary"""
        print("\n" + "=" * 70)
        print("CONFIGURATION")
        print("=" * 70)
        print(f"Database dir:    {self.database_dir}")
        print(f"Artifact dir:    {self.artifact_dir}")
        print(f"Folder prefix:   {self.chapter_folder_prefix}")
        print(f"Number padding:  {self.chapter_number_padding}")
        print(f"Lock timeout:    {self.lock_timeout_seconds}s")
        print(f"Propagate meta:  {self.propagate_book_metadata}")
        print(f"Workflow sync:   {self.sync_workflow_metadata_flag}")
        print("=" * 70 + "\n")


# Global settings instance
settings = Settings()
