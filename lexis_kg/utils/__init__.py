"""
Utilities

Modules:
    text: Key normalization, tokenization, identifiers
    cost_telemetry: Run-scoped cost collection via contextvars
    token_count: tiktoken-based token counting
"""
