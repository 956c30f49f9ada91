# trykkeri

A small HTTP service that turns HTML into PDF. You send it HTML, or the URL of a
page, and it returns a PDF rendered by `wkhtmltopdf`.

## Requirements

- Python 3.10 or later
- `wkhtmltopdf` installed and available on `PATH`, or pointed to with
  `WKHTMLTOPDF_PATH`

## Installation

```
pip install .
```

## Running

```
trykkeri
```

The server listens on all interfaces, on port 8080 by default, handles
requests in threads, and stops cleanly on SIGINT or SIGTERM.

## Endpoints

| Method     | Path            | Description                                            |
|------------|-----------------|--------------------------------------------------------|
| GET, HEAD  | `/health`       | Status, version and uptime in seconds as JSON          |
| POST       | `/print`        | Request body is HTML; the response is the PDF          |
| POST       | `/mirror`       | Request body is an `http`/`https` URL; the page is fetched and rendered |
| GET        | `/favicon.ico`  | Always `204 No Content`                                |

Any other path answers `404`; a known path with the wrong method answers `405`.

`/mirror` refuses URLs whose host resolves to a loopback, private, link-local
or unspecified address (which covers the `169.254.169.254` cloud-metadata
address), and checks every redirect the same way. It follows at most nine
redirects, gives up on the fetch after 15 seconds, and accepts a request body
of at most 8192 bytes.

PDF responses carry `Content-Disposition: inline; filename="..."` and
`Cache-Control: no-store`.

### Rendering options

`/print` and `/mirror` take these query parameters:

- `page_size` (default `A4`)
- `portrait` (`true` or `false`, default `true`)
- `margin_top_mm`, `margin_right_mm`, `margin_bottom_mm`, `margin_left_mm`
  (default `10`)
- `dpi` (default `300`)
- `print_background` (default `true`; when true, `--print-media-type` is passed)
- `grayscale` (default `false`)
- `filename`: the name in `Content-Disposition` (default `document.pdf`)
- `base_url`: accepted, but it does not change how the page is rendered

A value that cannot be parsed keeps that option's default.

Example:

```
curl -X POST --data-binary @page.html \
  "http://localhost:8080/print?page_size=Letter&portrait=false" -o page.pdf
```

### Errors

Errors come back as JSON of the form
`{"error": "<code>", "message": "<text>"}`:

| Status | Code                    |
|--------|-------------------------|
| 400    | `invalid_input`         |
| 408    | `timeout`               |
| 413    | `payload_too_large`     |
| 500    | `pdf_generation_failed` |
| 500    | `internal_error`        |

Only `invalid_input` errors carry a detailed message; the others use a fixed
text.

### Other behaviour

- Responses are gzip-compressed when the client's `Accept-Encoding` mentions
  `gzip`.
- `OPTIONS` requests are answered with `204` and CORS preflight headers.
  The request's `Origin` is echoed in `Access-Control-Allow-Origin` when it is
  allowed.
- Every request is logged once with its method, path, status and duration;
  failures are logged at error level.

## Configuration

All settings come from environment variables. A value that cannot be parsed
falls back to its default.

| Variable                | Default        | Meaning                                         |
|-------------------------|----------------|-------------------------------------------------|
| `PORT`                  | `8080`         | Port to listen on                               |
| `MAX_BODY_BYTES`        | `2000000`      | Largest accepted request body or fetched page   |
| `RENDER_TIMEOUT_MS`     | `30000`        | Time limit for one `wkhtmltopdf` run            |
| `WKHTMLTOPDF_PATH`      | `wkhtmltopdf`  | The `wkhtmltopdf` executable                    |
| `ALLOW_NET`             | `false`        | If false, `--disable-external-links` is passed  |
| `ALLOWLIST_PATHS`       | (none)         | Comma-separated paths passed as `--allow`       |
| `CORS_ORIGINS`          | (all allowed)  | Comma-separated allowed origins; `*` allows all |
| `JSON_LOGS`             | `false`        | Log as JSON instead of key=value text           |
| `PAYLOAD_LOG_MAX_BYTES` | `4096`         | Bytes of `/print` HTML shown in the request log (0 turns it off) |

`trykkeri.config.load(environ)` reads these from any mapping, or from the
process environment when called without arguments.

## Use as a WSGI application

`trykkeri.server.create_app(cfg, version, start_time)` returns the complete
WSGI application with every middleware in place, so any WSGI server can host
it. `start_time` is a `time.monotonic()` reading and defaults to now:

```python
from trykkeri.config import load
from trykkeri.server import create_app

app = create_app(load(), "1.0.0")
```

The PDF renderer can also be used on its own:

```python
from trykkeri.config import load
from trykkeri.pdf import PdfService, default_pdf_options

pdf_bytes = PdfService(load()).render("<h1>Hello</h1>", None, default_pdf_options())
```

## What it does not do

- It serves no API description or documentation page; `/openapi.json` and `/`
  answer `404`, even though the startup log mentions `/openapi.json`.
- It does not pass a base URL to the renderer, so relative links in submitted
  HTML or fetched pages are not resolved against `base_url` or the page's URL.

## Running the tests

```
pip install ".[test]"
pytest
```