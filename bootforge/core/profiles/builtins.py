from __future__ import annotations

from .models import StackProfile


DEFAULT_PROFILE = "full"

_HEAVY_OFF = {"auth": False, "ai": False, "jobs": False, "export": False, "ui": False}


def _bundle(**features: bool) -> dict:
    base = {"nextjs": True, "database": True, "testing": True, "quality": True}
    base.update(features)
    return base


def builtin_profiles() -> list[StackProfile]:
    # Code-quality tooling is never forced off by a builtin.
    return [
        StackProfile(
            name="minimal",
            description="Core framework only; heavier optional units disabled",
            overrides=dict(_HEAVY_OFF),
        ),
        StackProfile(
            name="api-only",
            description="Backend API surface without UI kit, AI or document export",
            overrides={"ai": False, "export": False, "ui": False, "state": False},
        ),
        StackProfile(
            name="full",
            description="Configured toggles pass through unmodified",
        ),
        StackProfile(
            name="ai_automation",
            description="Document processing, RAG and background AI workflows",
            overrides=_bundle(auth=True, ai=True, jobs=True, ui=True, state=False, export=False),
        ),
        StackProfile(
            name="fpa_dashboard",
            description="Financial planning dashboard with RBAC, charting and PDF/Excel reporting",
            overrides=_bundle(auth=True, ai=False, jobs=False, ui=True, state=True, export=True),
        ),
        StackProfile(
            name="collab_editor",
            description="Real-time document editing foundation",
            overrides=_bundle(auth=True, ai=False, jobs=True, ui=True, state=True, export=False),
        ),
        StackProfile(
            name="erp_gateway",
            description="API-only data synchronization layer",
            overrides=_bundle(auth=True, ai=False, jobs=True, ui=False, state=False, export=False),
        ),
        StackProfile(
            name="asset_manager",
            description="Core CRUD template replacing spreadsheets",
            overrides=_bundle(auth=True, ai=False, jobs=True, ui=True, state=True, export=True),
        ),
        StackProfile(
            name="tech_stack",
            description="Every component enabled, for end-to-end install checks",
            overrides=_bundle(auth=True, ai=True, jobs=True, ui=True, state=True, export=True),
        ),
    ]
