"""Application version string in semantic versioning form."""

SEMANTIC_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-"

APP_MAJOR = 0
APP_MINOR = 2
APP_PATCH = 2

# Must only contain characters from SEMANTIC_ALPHABET.
APP_PRE_RELEASE = "alpha"


def normalize_ver_string(value: str) -> str:
    """Strip every character that is not allowed in a semver pre-release."""
    return "".join(char for char in value if char in SEMANTIC_ALPHABET)


def version(commit: str = "") -> str:
    """Return the application version followed by the build commit."""
    text = f"{APP_MAJOR}.{APP_MINOR}.{APP_PATCH}"
    pre_release = normalize_ver_string(APP_PRE_RELEASE)
    if pre_release:
        text = f"{text}-{pre_release}"
    return f"{text} commit={commit}"