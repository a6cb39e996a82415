from __future__ import annotations

from typing import Any, Dict, List

from jinja2 import Template

from .input_profile import describe_expected_shape, describe_shape, format_json
from .program_spec import ProgramSpec
from .prompts_program import SYSTEM_PROMPT, USER_PROGRAM

_PROGRAM_TEMPLATE = Template(USER_PROGRAM)


def render_template(template: Template, **kwargs: Any) -> str:
    return template.render(**kwargs)


def assemble_prompt(spec: ProgramSpec, value: Any) -> str:
    """Render the code-generation prompt for ``spec`` and the current input.

    The same spec and input always render to the same text.
    """

    examples = [
        {"input": format_json(example.input), "output": format_json(example.output)}
        for example in spec.examples
    ]
    return render_template(
        _PROGRAM_TEMPLATE,
        task=(spec.prompt or "").strip(),
        input_shape=describe_shape(value),
        output_shape=describe_expected_shape(spec.expected_shape),
        examples=examples,
        input_json=format_json(value),
    )


def build_messages(prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
