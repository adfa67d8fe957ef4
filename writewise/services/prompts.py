"""
prompts.py - YAML prompt templates

Each file in prompts/ holds a ``system_prompt`` and a ``user_template``
(str.format placeholders). Files are read once and cached.
"""

from pathlib import Path
import yaml

PROMPTS_DIR = Path(__file__).parent.parent.parent / "prompts"

_cache: dict[str, dict] = {}


def load_prompt(name: str) -> dict:
    """Load a prompt YAML file."""
    if name not in _cache:
        with open(PROMPTS_DIR / name, "r") as f:
            _cache[name] = yaml.safe_load(f)
    return _cache[name]


def render(name: str, **values) -> list[dict]:
    """Build a system + user message pair from a prompt file."""
    prompt = load_prompt(name)
    return [
        {"role": "system", "content": prompt["system_prompt"].format(**values)},
        {"role": "user", "content": prompt["user_template"].format(**values)},
    ]
