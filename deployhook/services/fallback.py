"""Guarantee that the publish root always has a servable entry page."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from deployhook.models.settings import ManagerSettings


logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"
FALLBACK_TEMPLATE = "fallback.html"

_templates = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=True,
)


def render_fallback_page(*, repository: str, entry_point: str) -> str:
    """Render the self-describing page written when no real entry point exists.

    The page depends only on the repository and entry point, never on build output.
    """

    template = _templates.get_template(FALLBACK_TEMPLATE)
    return template.render(repository=repository, entry_point=entry_point)


@dataclass(slots=True)
class PublishGuarantor:
    """Write a fallback entry page whenever the publish root lacks one."""

    settings: ManagerSettings

    def ensure_servable(self, publish_root: Path | None = None) -> bool:
        """Make sure ``publish_root`` contains the entry point.

        Returns ``True`` when a fallback page had to be written and ``False``
        when a real entry point was already present.
        """

        root = publish_root or self.settings.serve_dir
        entry_path = root / self.settings.entry_point
        if entry_path.is_file():
            return False

        logger.warning(
            "No %s found in %s. This usually means the site has no home page yet, "
            "or the build failed before copying files. Creating a placeholder page.",
            self.settings.entry_point,
            root,
            extra={"event": "publish.fallback", "path": str(entry_path)},
        )
        root.mkdir(parents=True, exist_ok=True)
        page = render_fallback_page(repository=self.settings.repository_slug, entry_point=self.settings.entry_point)
        entry_path.write_text(page, encoding="utf-8")
        logger.info("Placeholder written to %s", entry_path, extra={"event": "publish.fallback_written"})
        return True


__all__ = ["FALLBACK_TEMPLATE", "PublishGuarantor", "render_fallback_page"]
