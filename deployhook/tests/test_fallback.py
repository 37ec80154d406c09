from __future__ import annotations

from pathlib import Path

from deployhook.services.fallback import PublishGuarantor, render_fallback_page
from deployhook.tests.fakes import make_settings


def _snapshot(root: Path) -> dict[str, bytes]:
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_fallback_written_when_publish_root_missing(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    guarantor = PublishGuarantor(settings=settings)

    written = guarantor.ensure_servable(settings.serve_dir)

    entry = settings.serve_dir / "index.html"
    assert written is True
    assert entry.is_file()
    html = entry.read_text(encoding="utf-8")
    assert "<!DOCTYPE html>" in html
    assert "octo/garden" in html


def test_fallback_written_into_empty_publish_root(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    settings.serve_dir.mkdir(parents=True)

    assert PublishGuarantor(settings=settings).ensure_servable() is True
    assert (settings.serve_dir / "index.html").is_file()


def test_existing_entry_point_is_left_alone(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    settings.serve_dir.mkdir(parents=True)
    (settings.serve_dir / "index.html").write_text("<h1>Real site</h1>", encoding="utf-8")
    (settings.serve_dir / "style.css").write_text("body {}", encoding="utf-8")
    guarantor = PublishGuarantor(settings=settings)

    before = _snapshot(settings.serve_dir)
    assert guarantor.ensure_servable() is False
    assert guarantor.ensure_servable() is False

    assert _snapshot(settings.serve_dir) == before


def test_second_call_after_fallback_is_noop(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    guarantor = PublishGuarantor(settings=settings)

    assert guarantor.ensure_servable() is True
    first = _snapshot(settings.serve_dir)
    assert guarantor.ensure_servable() is False

    assert _snapshot(settings.serve_dir) == first


def test_fallback_page_is_static_for_a_repository() -> None:
    first = render_fallback_page(repository="octo/garden", entry_point="index.html")
    second = render_fallback_page(repository="octo/garden", entry_point="index.html")

    assert first == second
    assert "Likely causes" in first


def test_fallback_page_escapes_repository_name() -> None:
    page = render_fallback_page(repository="<script>x</script>", entry_point="index.html")

    assert "<script>x</script>" not in page
    assert "&lt;script&gt;" in page
