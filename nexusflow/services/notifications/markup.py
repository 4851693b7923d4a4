import re

# Telegram renders payload bodies with MarkdownV2; every other channel gets
# the plain text produced by `strip_markup`.
TELEGRAM_PARSE_MODE = "MarkdownV2"

_SPECIAL_CHARACTERS = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")
_MARKUP_TOKEN = re.compile(r"\\(.)|[*_]", re.DOTALL)


def escape_markdown(text) -> str:
    """Escape `text` so Telegram shows it literally."""
    return _SPECIAL_CHARACTERS.sub(r"\\\1", str(text))


def bold(text) -> str:
    return f"*{escape_markdown(text)}*"


def italic(text) -> str:
    return f"_{escape_markdown(text)}_"


def strip_markup(text: str) -> str:
    """
    Plain-text rendering of a composed body.

    Unescaped `*` and `_` are emphasis markers added by the composers and are
    dropped; escaped characters come from user or static text and are kept.
    """
    return _MARKUP_TOKEN.sub(lambda match: match.group(1) or "", text)
