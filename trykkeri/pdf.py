"""HTML to PDF rendering through the wkhtmltopdf command."""

from __future__ import annotations

import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from trykkeri.config import Config
from trykkeri.errors import InternalError, PdfGenerationError, RequestTimeoutError


@dataclass
class PdfOptions:
    """Layout options for a rendered document; None leaves the renderer's choice."""

    page_size: str | None = None
    margin_top_mm: int | None = None
    margin_right_mm: int | None = None
    margin_bottom_mm: int | None = None
    margin_left_mm: int | None = None
    dpi: int | None = None
    print_background: bool | None = None
    grayscale: bool | None = None
    # True is portrait, False is landscape.
    portrait: bool | None = None


def default_pdf_options() -> PdfOptions:
    """A4 portrait, 10 mm margins, 300 dpi, backgrounds printed, in colour."""
    return PdfOptions(
        page_size="A4",
        margin_top_mm=10,
        margin_right_mm=10,
        margin_bottom_mm=10,
        margin_left_mm=10,
        dpi=300,
        print_background=True,
        grayscale=False,
        portrait=True,
    )


class PdfService:
    """Renders HTML documents to PDF with the configured wkhtmltopdf executable."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg

    def build_arguments(
        self, options: PdfOptions | None, input_path: str, output_path: str
    ) -> list[str]:
        """The command-line arguments for rendering ``input_path`` to ``output_path``."""
        opts = options if options is not None else default_pdf_options()
        args = ["--quiet", "--encoding", "utf-8"]
        if opts.page_size is not None:
            args += ["--page-size", opts.page_size]
        if opts.dpi is not None:
            args += ["--dpi", str(opts.dpi)]
        portrait = opts.portrait is None or opts.portrait
        args += ["--orientation", "Portrait" if portrait else "Landscape"]
        for flag, value in (
            ("--margin-top", opts.margin_top_mm),
            ("--margin-right", opts.margin_right_mm),
            ("--margin-bottom", opts.margin_bottom_mm),
            ("--margin-left", opts.margin_left_mm),
        ):
            if value is not None:
                args += [flag, f"{value}mm"]
        if opts.print_background is None or opts.print_background:
            args.append("--print-media-type")
        if opts.grayscale:
            args.append("--grayscale")
        if not self.cfg.allow_net:
            args.append("--disable-external-links")
        for path in self.cfg.allowlist_paths:
            args += ["--allow", path]
        return [*args, input_path, output_path]

    def render(
        self,
        html: str,
        base_url: str | None = None,
        options: PdfOptions | None = None,
        deadline: float | None = None,
    ) -> bytes:
        """Render ``html`` and return the PDF bytes.

        ``deadline`` is a monotonic-clock time after which rendering is abandoned.
        The renderer resolves relative links from the input file, so ``base_url``
        does not change the command.
        """
        del base_url
        limit = self.cfg.render_timeout_ms / 1000
        if deadline is not None:
            limit = min(limit, deadline - time.monotonic())

        try:
            workdir = tempfile.TemporaryDirectory(prefix="trykkeri-api-")
        except OSError as exc:
            raise InternalError(f"failed to create temp dir: {exc}") from exc

        with workdir as directory:
            input_path = Path(directory) / "input.html"
            output_path = Path(directory) / "output.pdf"
            try:
                input_path.write_bytes(html.encode("utf-8", "surrogateescape"))
            except OSError as exc:
                raise InternalError(f"failed to write HTML: {exc}") from exc

            args = self.build_arguments(options, str(input_path), str(output_path))
            if limit <= 0:
                raise RequestTimeoutError()
            try:
                completed = subprocess.run(
                    [self.cfg.wkhtmltopdf_path, *args],
                    cwd=directory,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    timeout=limit,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise RequestTimeoutError() from exc
            except OSError as exc:
                raise PdfGenerationError(f"wkhtmltopdf failed: {exc}") from exc
            if completed.returncode != 0:
                output = completed.stdout.decode("utf-8", "replace")
                raise PdfGenerationError(f"wkhtmltopdf failed: {output}")

            try:
                data = output_path.read_bytes()
            except OSError as exc:
                raise InternalError(f"failed to read PDF output: {exc}") from exc

        if not data:
            raise PdfGenerationError("generated PDF is empty")
        return data