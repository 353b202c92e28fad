from __future__ import annotations

import re


_RE_BEARER = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._\-+/=]{8,})")
_RE_ANTHROPIC_SK = re.compile(r"\bsk-ant-[A-Za-z0-9_\-]{10,}\b")
_RE_OPENAI_SK = re.compile(r"\bsk-[A-Za-z0-9_\-]{10,}\b")
_RE_GOOGLE_KEY = re.compile(r"\bAIza[0-9A-Za-z_\-]{30,}\b")
_RE_KEY_PARAM = re.compile(r"(?i)([?&]key=)[^&\s\"']+")
_RE_PEM = re.compile(r"-----BEGIN [^-]+-----.*?-----END [^-]+-----", re.DOTALL)


def redact_secrets(text: str) -> str:
    """
    Best-effort secret redaction for logs and returned error text.

    NOTE: Do not rely on this as the only control; also avoid logging secrets in the first place.
    """
    if not text:
        return text

    out = text
    out = _RE_PEM.sub("-----BEGIN [REDACTED]-----\n[REDACTED]\n-----END [REDACTED]-----", out)
    out = _RE_BEARER.sub("Bearer [REDACTED]", out)
    out = _RE_ANTHROPIC_SK.sub("[REDACTED]", out)
    out = _RE_OPENAI_SK.sub("[REDACTED]", out)
    out = _RE_GOOGLE_KEY.sub("[REDACTED]", out)
    out = _RE_KEY_PARAM.sub(r"\1[REDACTED]", out)
    return out
