"""
GitHub webhook 签名校验（`X-Hub-Signature-256`，HMAC SHA256）。

约定：
- hook 没有配置 secret 时一律放行（是否鉴权由 hook 配置决定，不是这里决定）
- 只抛异常、不打日志：secret 与签名原文都不应出现在日志或错误信息里
"""

from __future__ import annotations

import binascii
import hashlib
import hmac

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


class AuthError(Exception):
    """签名校验失败的基类。"""


class SignatureMalformedError(AuthError):
    """签名头缺失、前缀不对或不是合法 hex。"""


class SignatureMissingError(SignatureMalformedError):
    pass


class SignatureMismatchError(AuthError):
    pass


def compute_signature(secret: str | bytes, body: bytes) -> str:
    """计算 GitHub 格式的签名头值：`sha256=<hex>`。"""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    return SIGNATURE_PREFIX + hmac.new(key, body, hashlib.sha256).hexdigest()


def validate_signature(secret: str | bytes | None, body: bytes, signature_header: str | None) -> None:
    """
    校验原始 body 的签名。

    - secret 为 None：直接通过（未鉴权模式）
    - 头缺失 -> `SignatureMissingError`；前缀/hex 不合法 -> `SignatureMalformedError`
    - HMAC 不一致 -> `SignatureMismatchError`（常量时间比较）
    """
    if secret is None:
        return
    if signature_header is None:
        raise SignatureMissingError(f"Missing {SIGNATURE_HEADER} header")
    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise SignatureMalformedError(f"Malformed {SIGNATURE_HEADER}: should start with {SIGNATURE_PREFIX}")

    try:
        provided = binascii.unhexlify(signature_header[len(SIGNATURE_PREFIX) :])
    except (binascii.Error, ValueError) as exc:
        raise SignatureMalformedError(f"Malformed {SIGNATURE_HEADER}: should be all hex") from exc

    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    expected = hmac.new(key, body, hashlib.sha256).digest()
    if not hmac.compare_digest(expected, provided):
        raise SignatureMismatchError("Invalid message signature")
