"""Operator CLI for llm-doc-optimizer."""
