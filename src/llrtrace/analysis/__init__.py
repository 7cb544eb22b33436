"""Tag extraction, visibility classification and matching."""
