"""Core domain package for tg-forward.

Core contains rule validation, matching, the rule service consistency protocol
and the session codec without any Telegram, HTTP or storage-specific code,
keeping the business logic portable.
"""
