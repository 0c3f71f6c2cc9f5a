import copy
from functools import lru_cache
from pathlib import Path

import yaml

TEMPLATE_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def _read(name: str) -> dict:
    p = TEMPLATE_DIR / f"{name}.yaml"
    if not p.exists():
        available = [x.stem for x in TEMPLATE_DIR.glob("*.yaml")]
        raise FileNotFoundError(
            f"No template '{name}' at {p}. "
            f"Available: {available}"
        )
    return yaml.safe_load(p.read_text(encoding="utf-8")) or {}


def load_template(name: str) -> dict:
    """Fresh copy on every call; callers fill the skeleton in place."""
    return copy.deepcopy(_read(name))


def render_policies(store_name: str, email: str) -> dict:
    return {
        policy_type: body.strip().format(store_name=store_name, email=email)
        for policy_type, body in load_template("policies").items()
    }
