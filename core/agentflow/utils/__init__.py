"""Small standalone helpers."""

from agentflow.utils.forms import parse_form_string

__all__ = ["parse_form_string"]
