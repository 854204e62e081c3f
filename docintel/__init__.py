"""Document Intelligence Pipeline.

Turns scanned official documents into structured records: raw text from a
vision model, a stamp/signature assessment validated against a registry of
known stamps, a classified document template, and a complete typed field map.
Every model-backed stage has a deterministic fallback.
"""
