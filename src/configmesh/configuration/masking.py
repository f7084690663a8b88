"""
Masking of sensitive configuration values before they reach a log record.
"""

SENSITIVE_KEYWORDS = (
    "password", "passwd", "pass",
    "secret", "key", "token",
    "dsn", "auth", "credential",
    "api_key", "apikey", "apisecret",
    "private", "private_key",
)


def mask_sensitive_value(key: str, value: str) -> str:
    """
    Mask ``value`` when ``key`` looks sensitive.

    Short secrets become ``***``; longer ones keep their first and last four
    characters. Connection strings under dsn/uri/url keys lose their password
    part (``user:***@host``).
    """
    if value == "":
        return "(empty)"

    key_lower = key.lower()

    if any(keyword in key_lower for keyword in SENSITIVE_KEYWORDS):
        if len(value) <= 8:
            return "***"
        return value[:4] + "***" + value[-4:]

    if "@" in value and any(marker in key_lower for marker in ("dsn", "uri", "url")):
        user_pass, rest = value.split("@", 1)
        if ":" in user_pass:
            user = user_pass.rsplit(":", 1)[0]
            return f"{user}:***@{rest}"
        return f"***@{rest}"

    return value
