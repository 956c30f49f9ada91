import pytest

from trykkeri.config import Config, load


def test_load_env_override():
    cfg = load({"PORT": "9000", "MAX_BODY_BYTES": "1000"})
    assert cfg.port == 9000
    assert cfg.max_body_bytes == 1000


def test_load_defaults():
    cfg = load({})
    assert cfg == Config()
    assert cfg.port == 8080
    assert cfg.max_body_bytes == 2_000_000
    assert cfg.render_timeout_ms == 30_000
    assert cfg.wkhtmltopdf_path == "wkhtmltopdf"
    assert cfg.allow_net is False
    assert cfg.allowlist_paths == ()
    assert cfg.cors_origins is None
    assert cfg.json_logs is False
    assert cfg.payload_log_max_bytes == 4096


def test_load_reads_process_environment(monkeypatch):
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.setenv("WKHTMLTOPDF_PATH", "/opt/bin/wkhtmltopdf")
    cfg = load()
    assert cfg.port == 9100
    assert cfg.wkhtmltopdf_path == "/opt/bin/wkhtmltopdf"


@pytest.mark.parametrize("value", ["70000", "-1", "+80", "abc", "8_0", " 80"])
def test_invalid_port_falls_back(value):
    assert load({"PORT": value}).port == 8080


@pytest.mark.parametrize(
    ("value", "expected"),
    [("+500", 500), ("-5", -5), ("1_000", 2_000_000), ("9223372036854775808", 2_000_000)],
)
def test_signed_integer_parsing(value, expected):
    assert load({"MAX_BODY_BYTES": value}).max_body_bytes == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("TRUE", True), ("t", True), ("0", False), ("False", False), ("yes", False)],
)
def test_bool_parsing(value, expected):
    assert load({"ALLOW_NET": value}).allow_net is expected


def test_invalid_bool_keeps_default():
    assert load({"ALLOW_NET": "on"}).allow_net is False


def test_list_parsing_trims_and_skips_empty():
    cfg = load({"ALLOWLIST_PATHS": " /a , ,/b,", "CORS_ORIGINS": "https://x.example.com, https://y.example.com"})
    assert cfg.allowlist_paths == ("/a", "/b")
    assert cfg.cors_origins == ("https://x.example.com", "https://y.example.com")


def test_cors_origins_with_only_separators_is_permissive():
    assert load({"CORS_ORIGINS": " , ,"}).cors_origins is None


def test_payload_log_max_bytes():
    assert load({"PAYLOAD_LOG_MAX_BYTES": "0"}).payload_log_max_bytes == 0
    assert load({"PAYLOAD_LOG_MAX_BYTES": "x"}).payload_log_max_bytes == 4096