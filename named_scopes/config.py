import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    # Alias table used when apply() is called without an explicit config.
    alias_variant: str = os.getenv("NAMED_SCOPES_ALIAS_VARIANT", "where_with")
    # "replace" or "combine"
    merge_strategy: str = os.getenv("NAMED_SCOPES_MERGE_STRATEGY", "replace")
    auto_apply: bool = os.getenv("NAMED_SCOPES_AUTO_APPLY", "1") == "1"


settings = Settings()
