"""
Engine configuration - environment driven, with explicit overrides per call.
"""
import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

# Logging
LOG_LEVEL = os.getenv("FWRULE_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# Conflict analysis
ACTION_SOURCE = os.getenv("FWRULE_ACTION_SOURCE", "name")  # name | collection
ADDRESS_MATCHING = os.getenv("FWRULE_ADDRESS_MATCHING", "exact")  # exact | cidr

# Pair scan throttling - cap workers so a big policy does not eat every core.
# Raw strings; AnalysisSettings coerces and validates them.
PARALLEL_THRESHOLD = os.getenv("FWRULE_PARALLEL_THRESHOLD", "2000")  # rules; 0 disables
MAX_WORKERS = os.getenv("FWRULE_MAX_WORKERS", "4")
CHUNK_SIZE = os.getenv("FWRULE_CHUNK_SIZE", "5000")  # pairs per worker chunk


class AnalysisSettings(BaseModel):
    """Knobs for the duplicate/conflict analysis pass."""
    action_source: Literal["name", "collection"] = "name"
    address_matching: Literal["exact", "cidr"] = "exact"
    parallel_threshold: int = Field(default=2000, ge=0)
    max_workers: int = Field(default=4, ge=1)
    chunk_size: int = Field(default=5000, ge=1)


def get_settings() -> AnalysisSettings:
    """
    Build settings from the FWRULE_* environment variables.
    The environment is read on every call; invalid values raise pydantic's
    ValidationError instead of being replaced by defaults.
    """
    return AnalysisSettings(
        action_source=os.getenv("FWRULE_ACTION_SOURCE", ACTION_SOURCE),
        address_matching=os.getenv("FWRULE_ADDRESS_MATCHING", ADDRESS_MATCHING),
        parallel_threshold=os.getenv("FWRULE_PARALLEL_THRESHOLD", PARALLEL_THRESHOLD),
        max_workers=os.getenv("FWRULE_MAX_WORKERS", MAX_WORKERS),
        chunk_size=os.getenv("FWRULE_CHUNK_SIZE", CHUNK_SIZE),
    )


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)
