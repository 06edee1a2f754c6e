import io
import logging

from image_porter.logging_utils import (
    RedactingFilter,
    configure_logging,
    mask_sensitive,
    redact,
)


def test_mask_sensitive():
    assert mask_sensitive("short") == "****"
    assert mask_sensitive("abcdefghijklmnop") == "abcd****mnop"


def test_redact_patterns_and_literals():
    text = redact("login password=hunter2 token: abc123 with s3cret-literal", ["s3cret-literal"])
    assert "hunter2" not in text
    assert "abc123" not in text
    assert "s3cret-literal" not in text
    assert redact("Authorization: Bearer abcdefghijklmnop") == "Authorization: Bearer <REDACTED_TOKEN>"
    assert redact("token ghp_abcdefghijklmnopqrstuvwxyz") == "token <REDACTED_TOKEN>"


def test_filter_scrubs_formatted_message():
    stream = io.StringIO()
    logger = logging.getLogger("redaction-test")
    handler = logging.StreamHandler(stream)
    handler.addFilter(RedactingFilter(["topsecretvalue"]))
    logger.addHandler(handler)
    try:
        logger.warning("pushing with %s", "topsecretvalue")
    finally:
        logger.removeHandler(handler)

    assert stream.getvalue() == "pushing with <REDACTED>\n"


def test_configure_logging_is_idempotent():
    logger = configure_logging("warn")
    configure_logging("debug")
    try:
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
        assert configure_logging("info", debug=True).level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.propagate = True
