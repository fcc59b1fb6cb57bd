from pathlib import Path
from string import Template

PROMPT_DIR = Path(__file__).parent.parent / "prompts"


def load_prompt(name: str, *, version: str = "v1", **kwargs) -> str:
    """
    Reason:
    - Prompts must be versioned and reproducible.
    Benefit:
    - No brace escaping issues; the JSON example in the prompt stays literal.
    """
    prompt_path = PROMPT_DIR / name / f"{version}.txt"
    if not prompt_path.exists():
        raise RuntimeError(f"Prompt '{name}' version '{version}' not found at {prompt_path}")

    with open(prompt_path, "r", encoding="utf-8") as f:
        template = Template(f.read())

    try:
        return template.substitute(**kwargs)
    except KeyError as e:
        raise RuntimeError(
            f"Prompt substitution failed for '{name}'. Missing variable: {e}"
        )
