"""
Logging utilities for the agent orchestrator.

Library code logs through the ``trinity`` logger hierarchy and never emits
private keys, API keys, signer UUIDs or payment headers in clear text.
Output is opt-in through :func:`configure_logging`.
"""

import logging
import re
from typing import Any

_root_logger = logging.getLogger("trinity")
_root_logger.addHandler(logging.NullHandler())
_http_logger = logging.getLogger("trinity.http")
_chain_logger = logging.getLogger("trinity.chain")

_SENSITIVE_PATTERNS = [
    # 32-byte hex private keys
    (re.compile(r"(private_key|deployer_key)['\"]?\s*[:=]\s*['\"]?(0x)?[a-fA-F0-9]{64}['\"]?", re.IGNORECASE), r"\1: [REDACTED]"),
    # Signer UUIDs grant posting rights on the social network
    (re.compile(r"(signer_uuid|signerUuid)['\"]?\s*[:=]\s*['\"]?[0-9a-fA-F-]{36}['\"]?"), r"\1: [REDACTED]"),
    # 65-byte ECDSA signatures
    (re.compile(r"0x[a-fA-F0-9]{130}\b"), "[SIGNATURE_REDACTED]"),
    (re.compile(r"(secret|token|password|api_key|x-payment)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE), r"\1: [REDACTED]"),
]

_DEFAULT_SENSITIVE_KEYS = frozenset({
    "signature",
    "private_key",
    "deployer_key",
    "secret",
    "token",
    "password",
    "api_key",
    "authorization",
    "signer_uuid",
    "x-payment",
})

_HASH_PREVIEW_LENGTH = 10


def configure_logging(
    level: int = logging.INFO,
    http_level: int | None = None,
    chain_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Configure orchestrator logging.

    Args:
        level: Default log level for all ``trinity`` loggers (default: INFO)
        http_level: Log level for provider HTTP traffic (default: same as level)
        chain_level: Log level for contract reads/writes (default: same as level)
        handler: Custom handler to use (default: StreamHandler to stderr)
        format_string: Custom format string (default: includes timestamp, level, logger name)

    Example:
        ```python
        import logging
        from trinity.logging import configure_logging

        configure_logging(level=logging.INFO, chain_level=logging.DEBUG)
        ```
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if handler is None:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(format_string))

    _root_logger.setLevel(level)
    _root_logger.addHandler(handler)
    _http_logger.setLevel(http_level if http_level is not None else level)
    _chain_logger.setLevel(chain_level if chain_level is not None else level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get an orchestrator logger.

    Args:
        name: Logger name suffix (e.g., "deployer", "workers.social"). If None,
            returns the root ``trinity`` logger.

    Returns:
        Logger instance
    """
    if name is None:
        return _root_logger
    return logging.getLogger(f"trinity.{name}")


def mask_sensitive_data(text: str) -> str:
    """
    Mask private keys, signatures, signer UUIDs and API keys in a string.

    Args:
        text: Text that may contain sensitive data

    Returns:
        Text with sensitive data masked
    """
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def truncate_hash(value: str) -> str:
    """Shorten a transaction hash or digest for log lines."""
    if len(value) <= _HASH_PREVIEW_LENGTH:
        return value
    return f"{value[:_HASH_PREVIEW_LENGTH]}..."


def safe_log_dict(
    data: dict[str, Any], sensitive_keys: frozenset[str] | set[str] | None = None
) -> dict[str, Any]:
    """
    Create a copy of a dictionary with sensitive values masked.

    A key is sensitive when any of ``sensitive_keys`` occurs in its lowercased
    name, so ``NEYNAR_API_KEY`` and ``x-payment-amount`` are both caught.

    Args:
        data: Dictionary that may contain sensitive values
        sensitive_keys: Key fragments to mask

    Returns:
        Dictionary with sensitive values replaced with "[REDACTED]"
    """
    if sensitive_keys is None:
        sensitive_keys = _DEFAULT_SENSITIVE_KEYS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sk in key_lower for sk in sensitive_keys):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = safe_log_dict(value, sensitive_keys)
        elif isinstance(value, list):
            result[key] = [
                safe_log_dict(item, sensitive_keys) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def log_http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
) -> None:
    """Log a provider HTTP request at DEBUG level with sensitive data masked."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"{method} {url}"]
    if headers:
        log_parts.append(f"headers={safe_log_dict(dict(headers))}")
    if body:
        log_parts.append(f"body={safe_log_dict(body)}")

    _http_logger.debug(" | ".join(log_parts))


def log_http_response(
    status_code: int,
    url: str,
    body: dict[str, Any] | None = None,
    elapsed_ms: float | None = None,
) -> None:
    """Log a provider HTTP response at DEBUG level with sensitive data masked."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return

    log_parts = [f"Response {status_code} from {url}"]
    if elapsed_ms is not None:
        log_parts.append(f"elapsed={elapsed_ms:.2f}ms")
    if body:
        log_parts.append(f"body={safe_log_dict(body)}")

    _http_logger.debug(" | ".join(log_parts))


def log_chain_write(
    function: str,
    address: str,
    tx_hash: str | None = None,
    args: tuple[Any, ...] = (),
) -> None:
    """
    Log a contract write at DEBUG level.

    Args:
        function: Contract function name
        address: Contract address
        tx_hash: Submitted transaction hash, if any
        args: Call arguments; long hex strings are truncated
    """
    if not _chain_logger.isEnabledFor(logging.DEBUG):
        return

    shown = [
        truncate_hash(a) if isinstance(a, str) and a.startswith("0x") and len(a) > 42 else a
        for a in args
    ]
    log_parts = [f"{function} on {address}", f"args={shown}"]
    if tx_hash:
        log_parts.append(f"tx={truncate_hash(tx_hash)}")

    _chain_logger.debug(" | ".join(log_parts))


__all__ = [
    "configure_logging",
    "get_logger",
    "mask_sensitive_data",
    "truncate_hash",
    "safe_log_dict",
    "log_http_request",
    "log_http_response",
    "log_chain_write",
]
