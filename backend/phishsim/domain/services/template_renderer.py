"""
Template Renderer seam
Turns a template and campaign context into the subject/body handed to the
dispatch engine. Personalization placeholders ({{.FirstName}}, {{.URL}},
{{.Tracker}}) are filled per recipient by the engine itself.
"""
from dataclasses import dataclass
from typing import Protocol


@dataclass
class RenderedMessage:
    subject: str
    body: str


class TemplateRenderer(Protocol):
    def render(self, template, campaign) -> RenderedMessage:
        ...


class PassthroughRenderer:
    """Hands the stored subject and HTML (or text) to the engine unchanged."""

    def render(self, template, campaign) -> RenderedMessage:
        body = template.html or template.text or ""
        return RenderedMessage(subject=template.subject or "", body=body.strip())
