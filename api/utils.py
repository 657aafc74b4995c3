import gzip
import logging
import re
import secrets
import shutil
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import URLValidator
from django.utils.crypto import constant_time_compare, salted_hmac

logger = logging.getLogger(__name__)

# Characters that mean nothing to sh anywhere in a word
_SAFE = re.compile(r"[A-Za-z0-9_/\-.,:@%^+=]+")
# Characters that are literal once wrapped in double quotes
_SAFEISH = re.compile(r"[A-Za-z0-9_/\-.,:@%^+=?#\[\]{}|&()<>; *']+")
_QUOTE_RUN = re.compile(r"'+")

_url_validator = URLValidator(schemes=["http", "https"])


def _requote(match: re.Match) -> str:
    run = match.group(0)
    if len(run) < 3:
        return "'" + run.replace("'", "\\'") + "'"
    return "'\"" + run + "\"'"


def bash_escape(arg: str) -> str:
    """
    Quote one argument for a POSIX shell command line.

    Plain words pass through untouched, words that are only unsafe outside of
    quotes get double quotes, everything else is single-quoted with embedded
    quote runs spliced back in.
    """
    if arg == "":
        return "''"
    if _SAFE.fullmatch(arg):
        return arg
    if _SAFEISH.fullmatch(arg):
        return '"' + arg + '"'
    return "'" + _QUOTE_RUN.sub(_requote, arg) + "'"


def is_valid_url(value: str | None) -> bool:
    """True for absolute http(s) URLs."""
    if not value:
        return False
    try:
        _url_validator(value)
    except ValidationError:
        return False
    return True


def gzip_file(path: Path) -> Path:
    """Write <path>.gz next to path and return it. The source is left alone."""
    target = path.with_name(path.name + ".gz")
    with open(path, "rb") as src, gzip.open(target, "wb") as dst:
        shutil.copyfileobj(src, dst)
    return target


def remove_file(path: Path | None):
    """Best-effort unlink used by cleanup paths; a failure is only logged."""
    if path is None:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("could not remove %s: %s", path, exc)


def generate_secret() -> str:
    return secrets.token_urlsafe(24)


def hash_secret(token: str) -> str:
    return salted_hmac(settings.SECRET_TOKEN_SALT, token, algorithm="sha256").hexdigest()


def check_secret(token: str | None, secret_hash: str) -> bool:
    if not token or not secret_hash:
        return False
    return constant_time_compare(hash_secret(token), secret_hash)
