import io
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from shelf.config import LibraryConfig, MonitoringConfig, ScannerConfig, ShelfConfig


def make_png_bytes(color: str = "red") -> bytes:
    img = Image.new("RGB", (10, 10), color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_opf(title=None, cover_item=None) -> str:
    title_xml = f"<dc:title>{title}</dc:title>" if title is not None else ""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    {title_xml}
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml"/>
    {cover_item or ""}
  </manifest>
</package>"""


def make_epub(path: Path, entries: dict) -> Path:
    """Write a zip archive with the given {name: str|bytes} entries."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def make_book(path: Path, title: str = "Moby Dick", with_cover: bool = True) -> Path:
    entries = {
        "META-INF/container.xml": "<container/>",
        "OEBPS/content.opf": make_opf(
            title,
            '<item id="cover-image" href="images/cover.png" media-type="image/png"/>'
            if with_cover
            else None,
        ),
    }
    if with_cover:
        entries["OEBPS/images/cover.png"] = make_png_bytes()
    return make_epub(path, entries)


@pytest.fixture
def shelf_config(tmp_path):
    """Config with the library and data directories under tmp_path."""
    library_path = tmp_path / "books"
    library_path.mkdir()

    return ShelfConfig(
        library=LibraryConfig(path=library_path, name="Test Library"),
        scanner=ScannerConfig(),
        monitoring=MonitoringConfig(enabled=False),
        data_dir=tmp_path / "data",
    )


def scratch_entries(config: ShelfConfig) -> list:
    if not config.scratch_dir.exists():
        return []
    return list(config.scratch_dir.iterdir())
