import logging
import re
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_ORACLE_CODE_PATTERN = re.compile(r"\b((?:ORA|DPY|DPI)-\d{4,5})\b")


def translate_oracle_parameters(config: Dict[str, Any]) -> Dict[str, Any]:
    """Translate common connection parameter names to the names we use.

    Supports both conventions:
    - Industry standard: username, database, service
    - oracledb: user, service_name

    Args:
        config: Original configuration parameters

    Returns:
        Translated configuration
    """
    translated = dict(config)

    param_mapping = {
        "username": "user",
        "database": "service_name",
        "service": "service_name",
    }

    for industry_std, oracle_name in param_mapping.items():
        if industry_std in config and oracle_name not in config:
            translated[oracle_name] = config[industry_std]
            logger.debug(
                f"OracleSession: Translated parameter '{industry_std}' -> '{oracle_name}'"
            )
        translated.pop(industry_std, None)

    if "port" in translated and translated["port"] is not None:
        translated["port"] = int(translated["port"])

    return translated


def quote_identifier(name: str) -> str:
    """Quote an Oracle identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def split_error(error: BaseException) -> Tuple[Optional[str], str]:
    """Return ``(code, message)`` for a driver error.

    python-oracledb errors carry an ``_Error`` object as their first argument
    with ``full_code`` and ``message``; anything else is parsed from its text.
    """
    args = getattr(error, "args", ())
    detail = args[0] if args else None

    full_code = getattr(detail, "full_code", None)
    message = getattr(detail, "message", None)
    if full_code and message:
        message = str(message).strip()
        if message.startswith(full_code):
            message = message[len(full_code):].lstrip(": ").strip()
        return full_code, message

    text = str(detail if detail is not None else error).strip()
    match = _ORACLE_CODE_PATTERN.search(text)
    if match:
        code = match.group(1)
        message = text[match.end():].lstrip(": ").strip() or text
        return code, message
    return None, text
