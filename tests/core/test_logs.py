import io
import logging

from rich.console import Console

from quickenv.logs import configure_logging, parse_log_level


def _capture():
    buf = io.StringIO()
    console = Console(file=buf, highlight=False, soft_wrap=True, color_system=None)
    logger = configure_logging("debug", console=console)
    return logger, buf


def test_parse_log_level():
    assert parse_log_level("debug") == logging.DEBUG
    assert parse_log_level("trace") == logging.DEBUG
    assert parse_log_level("WARN") == logging.WARNING
    assert parse_log_level("error") == logging.ERROR
    assert parse_log_level("off") > logging.CRITICAL
    assert parse_log_level(None) == logging.INFO
    assert parse_log_level("nonsense") == logging.INFO


def test_levels_are_tagged_and_info_is_bare():
    logger, buf = _capture()
    log = logging.getLogger("quickenv.test")

    log.info("plain info")
    log.warning("careful")
    log.error("broken")
    log.debug("details")

    assert buf.getvalue().splitlines() == [
        "plain info",
        "[WARN quickenv] careful",
        "[ERROR quickenv] broken",
        "[DEBUG quickenv] details",
    ]
    assert logger.name == "quickenv"


def test_markup_only_rendered_when_requested():
    _, buf = _capture()
    log = logging.getLogger("quickenv.test")

    log.info("[green]1[/green] rendered", extra={"markup": True})
    log.info("[green]kept[/green] literally")

    assert buf.getvalue().splitlines() == ["1 rendered", "[green]kept[/green] literally"]


def test_configure_is_idempotent():
    configure_logging("info")
    logger = configure_logging("error")
    handlers = [h for h in logger.handlers if type(h).__name__ == "QuickenvLogHandler"]
    assert len(handlers) == 1
    assert logger.level == logging.ERROR
