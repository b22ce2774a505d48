"""
Versioned prompt loader: reads prompts from coachflow/prompts/{version}/{component}.yaml.
The version comes from Settings.prompt_version (default v1).
"""
from functools import lru_cache
from pathlib import Path
from typing import Dict, Tuple

import yaml

_PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=32)
def load_prompts(component: str, version: str = "v1") -> Dict[str, str]:
    """Load prompt templates for a component. Returns dict with keys "system" and "user"; values may contain placeholders like <<TRANSCRIPT>>.
    Raises FileNotFoundError for an unknown component/version."""
    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    out: Dict[str, str] = {}
    for key in ("system", "user"):
        val = data.get(key)
        if val is not None:
            out[key] = val.strip() if isinstance(val, str) else str(val).strip()
    return out


def fill(template: str, **values: str) -> str:
    """Replace <<NAME>> placeholders with values[name.lower()]."""
    for name, value in values.items():
        template = template.replace(f"<<{name.upper()}>>", value)
    return template


def render_prompts(component: str, version: str = "v1", **values: str) -> Tuple[str, str]:
    """Return (system, user) with placeholders filled. Raises ValueError if either template is missing."""
    prompts = load_prompts(component, version)
    missing = [k for k in ("system", "user") if k not in prompts]
    if missing:
        raise ValueError(f"Component {component} has no {', '.join(missing)} prompt in version {version}")
    return fill(prompts["system"], **values), fill(prompts["user"], **values)
