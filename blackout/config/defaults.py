"""Default blackout groups and request headers for the regional portal."""

DEFAULT_GROUPS: list[str] = [
    "11", "12",
    "21", "22",
    "31", "32",
    "41", "42",
    "51", "52",
    "61", "62",
]

# The portal serves the token page only to browser-like clients
DEFAULT_USER_AGENTS: list[str] = [
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
]
