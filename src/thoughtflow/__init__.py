"""
Thoughtflow: cognitive pipeline for captured thoughts.

Turns free-text thoughts into organized knowledge:
- LLM classification with a deterministic keyword fallback
- Per-user pattern learning
- Connection discovery, insight reports and predictive suggestions
"""

__version__ = "0.1.0"
