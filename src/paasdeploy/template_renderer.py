# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/template_renderer.py

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pathlib import Path

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class TemplateRenderer:
    """Renders packaged templates with the context exactly as given."""

    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, context: dict) -> str:
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**context)
