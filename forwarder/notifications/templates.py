"""Email template rendering using Jinja2.

Templates live in the forwarder.notifications/email_templates package
directory. Each email kind has three files: ``<kind>_subject.j2``,
``<kind>_body.html.j2`` and ``<kind>_body.txt.j2``.
"""

from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from forwarder.logging import get_logger

from .models import NotificationTemplateError, RenderedEmail

logger = get_logger(__name__, component="templates")

SINGLE_FORWARD = "single_forward"
BULK_FORWARD = "bulk_forward"


class TemplateRenderer:
    """Renders subject, HTML and text bodies for an email kind.

    HTML templates are autoescaped; subject and text templates are not.
    StrictUndefined turns a missing context key into an error instead of an
    empty string in a client-facing email.
    """

    def __init__(self, template_dir: str = "email_templates"):
        self.env = Environment(
            loader=PackageLoader("forwarder.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, kind: str, context: Dict[str, Any]) -> RenderedEmail:
        """Render all three templates of ``kind``.

        Raises:
            NotificationTemplateError: If a template is missing or fails to render
        """
        try:
            subject = self.env.get_template(f"{kind}_subject.j2").render(context)
            html_body = self.env.get_template(f"{kind}_body.html.j2").render(context)
            text_body = self.env.get_template(f"{kind}_body.txt.j2").render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed for {kind}: {e}"
            logger.error(error_msg, exc_info=True, extra={"event": "notification.template.error"})
            raise NotificationTemplateError(error_msg) from e

        return RenderedEmail(
            subject=" ".join(subject.split()),
            html=html_body,
            text=text_body,
        )
