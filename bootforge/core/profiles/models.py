from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field


# feature name -> config key carrying its toggle
FEATURE_KEYS: Dict[str, str] = {
    "nextjs": "ENABLE_NEXTJS",
    "database": "ENABLE_DATABASE",
    "auth": "ENABLE_AUTHJS",
    "ai": "ENABLE_AI_SDK",
    "jobs": "ENABLE_PG_BOSS",
    "ui": "ENABLE_SHADCN",
    "state": "ENABLE_ZUSTAND",
    "export": "ENABLE_PDF_EXPORTS",
    "testing": "ENABLE_TEST_INFRA",
    "quality": "ENABLE_CODE_QUALITY",
    "docker": "ENABLE_DOCKER",
}

# Tag spellings found in unit headers that name a feature.
TAG_ALIASES: Dict[str, str] = {
    "authjs": "auth",
    "ai_sdk": "ai",
    "pg_boss": "jobs",
    "shadcn": "ui",
    "zustand": "state",
    "pdf": "export",
    "exports": "export",
    "test": "testing",
    "code_quality": "quality",
    "db": "database",
}


class StackProfile(BaseModel):
    name: str
    description: Optional[str] = None
    # feature -> forced value; features absent here pass through from config
    overrides: Dict[str, bool] = Field(default_factory=dict)
