import json
import sys
import time
from pathlib import Path

import pytest

from trykkeri.config import Config
from trykkeri.errors import InternalError, PdfGenerationError, RequestTimeoutError
from trykkeri.pdf import PdfOptions, PdfService, default_pdf_options

RENDERER = """
import json, os, sys
args = sys.argv[1:]
with open(args[-2], "rb") as source:
    html = source.read()
info = {"args": args[:-2], "cwd": os.getcwd(), "src": args[-2]}
with open(args[-1], "wb") as target:
    target.write(b"%PDF-fake\\n" + json.dumps(info).encode() + b"\\n" + html)
"""

FAILING = """
import sys
sys.stderr.write("boom")
sys.exit(2)
"""

EMPTY = """
import sys
open(sys.argv[-1], "wb").close()
"""

NO_OUTPUT = """
pass
"""

SLEEPING = """
import time
time.sleep(10)
"""

DEFAULT_ARGS = [
    "--quiet", "--encoding", "utf-8",
    "--page-size", "A4",
    "--dpi", "300",
    "--orientation", "Portrait",
    "--margin-top", "10mm",
    "--margin-right", "10mm",
    "--margin-bottom", "10mm",
    "--margin-left", "10mm",
    "--print-media-type",
    "--disable-external-links",
]


def _script(tmp_path, body):
    path = tmp_path / "fake-wkhtmltopdf"
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return str(path)


def test_default_pdf_options():
    opts = default_pdf_options()
    assert opts.page_size == "A4"
    assert opts.margin_top_mm == 10
    assert opts.dpi == 300
    assert opts.portrait is True
    assert opts.print_background is True
    assert opts.grayscale is False


def test_default_options_are_independent():
    first = default_pdf_options()
    first.dpi = 72
    assert default_pdf_options().dpi == 300


def test_build_arguments_defaults():
    svc = PdfService(Config())
    assert svc.build_arguments(default_pdf_options(), "in.html", "out.pdf") == [
        *DEFAULT_ARGS, "in.html", "out.pdf"
    ]


def test_build_arguments_none_uses_defaults():
    svc = PdfService(Config())
    assert svc.build_arguments(None, "a", "b") == [*DEFAULT_ARGS, "a", "b"]


def test_build_arguments_unset_options():
    svc = PdfService(Config())
    assert svc.build_arguments(PdfOptions(), "a", "b") == [
        "--quiet", "--encoding", "utf-8",
        "--orientation", "Portrait",
        "--print-media-type",
        "--disable-external-links",
        "a", "b",
    ]


def test_build_arguments_landscape_grayscale_no_background():
    svc = PdfService(Config())
    opts = PdfOptions(page_size="Letter", portrait=False, grayscale=True, print_background=False)
    assert svc.build_arguments(opts, "a", "b") == [
        "--quiet", "--encoding", "utf-8",
        "--page-size", "Letter",
        "--orientation", "Landscape",
        "--grayscale",
        "--disable-external-links",
        "a", "b",
    ]


def test_build_arguments_network_and_allowlist():
    svc = PdfService(Config(allow_net=True, allowlist_paths=("/srv/a", "/srv/b")))
    args = svc.build_arguments(PdfOptions(), "a", "b")
    assert "--disable-external-links" not in args
    assert args[-6:] == ["--allow", "/srv/a", "--allow", "/srv/b", "a", "b"]


def test_render_passes_html_and_arguments(tmp_path):
    svc = PdfService(Config(wkhtmltopdf_path=_script(tmp_path, RENDERER)))
    data = svc.render("<h1>Hej</h1>", None, None)
    header, info_line, html = data.split(b"\n", 2)
    assert header == b"%PDF-fake"
    assert html == "<h1>Hej</h1>".encode()
    info = json.loads(info_line)
    assert info["args"] == DEFAULT_ARGS
    assert Path(info["src"]).parent == Path(info["cwd"])
    assert Path(info["cwd"]).name.startswith("trykkeri-api-")
    assert not Path(info["cwd"]).exists()


def test_render_failure_reports_output(tmp_path):
    svc = PdfService(Config(wkhtmltopdf_path=_script(tmp_path, FAILING)))
    with pytest.raises(PdfGenerationError) as excinfo:
        svc.render("<p>x</p>")
    assert str(excinfo.value) == "pdf generation failed: wkhtmltopdf failed: boom"


def test_render_missing_executable(tmp_path):
    svc = PdfService(Config(wkhtmltopdf_path=str(tmp_path / "absent")))
    with pytest.raises(PdfGenerationError) as excinfo:
        svc.render("<p>x</p>")
    assert str(excinfo.value).startswith("pdf generation failed: wkhtmltopdf failed")


def test_render_empty_output(tmp_path):
    svc = PdfService(Config(wkhtmltopdf_path=_script(tmp_path, EMPTY)))
    with pytest.raises(PdfGenerationError) as excinfo:
        svc.render("<p>x</p>")
    assert str(excinfo.value) == "pdf generation failed: generated PDF is empty"


def test_render_missing_output(tmp_path):
    svc = PdfService(Config(wkhtmltopdf_path=_script(tmp_path, NO_OUTPUT)))
    with pytest.raises(InternalError) as excinfo:
        svc.render("<p>x</p>")
    assert str(excinfo.value).startswith("internal: failed to read PDF output")


def test_render_times_out(tmp_path):
    svc = PdfService(
        Config(wkhtmltopdf_path=_script(tmp_path, SLEEPING), render_timeout_ms=300)
    )
    started = time.monotonic()
    with pytest.raises(RequestTimeoutError):
        svc.render("<p>x</p>")
    assert time.monotonic() - started < 5


def test_render_past_deadline(tmp_path):
    svc = PdfService(Config(wkhtmltopdf_path=_script(tmp_path, RENDERER)))
    with pytest.raises(RequestTimeoutError):
        svc.render("<p>x</p>", deadline=time.monotonic() - 1)