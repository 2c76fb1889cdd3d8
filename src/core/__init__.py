"""Core domain package for teledigest.

Core contains classification, filtering, deduplication and digest logic
without any Telegram or file-specific code, keeping the business logic
portable.
"""
